import json

import pytest

from weighted_sdm.config import Parameters, load_parameters
from weighted_sdm.errors import ConfigurationError


def test_load_parameters(tmp_path):
    path = tmp_path / "wsdm.json"
    path.write_text(json.dumps({"norm": True, "wsdmFeatures": [{"name": "1-const", "type": "const"}]}))

    parameters = load_parameters(path)

    assert parameters.get_bool("norm") is True
    assert parameters.is_list_of_mappings("wsdmFeatures")


@pytest.mark.parametrize("content", ["[1, 2]", "{not json"])
def test_invalid_parameter_files(tmp_path, content):
    path = tmp_path / "wsdm.json"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_parameters(path)


def test_missing_parameter_file(tmp_path):
    with pytest.raises(ConfigurationError, match="cannot read parameter file"):
        load_parameters(tmp_path / "absent.json")


@pytest.mark.parametrize(
    "value, expected",
    [(True, True), ("true", True), ("0", False), (0, False), ("yes", True)],
)
def test_get_bool(value, expected):
    assert Parameters({"flag": value}).get_bool("flag") is expected


def test_get_float_rejects_text():
    with pytest.raises(ConfigurationError, match="must be a number"):
        Parameters({"1-const": "high"}).get_float("1-const", 0.8)
