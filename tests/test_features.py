import pytest

from weighted_sdm.errors import ConfigurationError
from weighted_sdm.external import ValueTableRegistry
from weighted_sdm.features import Feature, FeatureSet, FeatureType


@pytest.mark.parametrize(
    "record, expected",
    [
        ({}, (True, False, False)),
        ({"unigram": False}, (False, True, False)),
        ({"unigram": False, "bigram": False}, (False, False, True)),
        ({"unigram": True, "bigram": True}, (True, True, False)),
        ({"bigram": True}, (True, True, False)),
        ({"unigram": False, "trigram": True}, (False, True, True)),
    ],
)
def test_arity_defaults_cascade(record, expected):
    feature = Feature.from_parameters({"name": "f", **record})
    assert (feature.unigram, feature.bigram, feature.trigram) == expected


def test_record_defaults():
    feature = Feature.from_parameters({"name": "f"})
    assert feature.type is FeatureType.LOGTF
    assert feature.lambda_ == 1.0
    assert feature.group == ""
    assert feature.part == ""


@pytest.mark.parametrize(
    "name, expected",
    [
        ("const", FeatureType.CONST),
        ("LOGTF", FeatureType.LOGTF),
        ("logdf", FeatureType.LOGDF),
        ("LogNGramTF", FeatureType.LOGNGRAMTF),
        ("log_document_frequency", FeatureType.LOGDF),
    ],
)
def test_type_names(name, expected):
    assert FeatureType.parse(name) is expected


def test_unknown_type_is_rejected():
    with pytest.raises(ConfigurationError, match="unknown feature type 'bm25'"):
        Feature.from_parameters({"name": "f", "type": "bm25"})


def test_missing_name_is_rejected():
    with pytest.raises(ConfigurationError, match="without a name"):
        Feature.from_parameters({"type": "const"})


def test_external_requires_path():
    with pytest.raises(ConfigurationError, match="require a 'path'"):
        Feature.from_parameters({"name": "ext", "type": "external"}, registry=ValueTableRegistry())


def test_external_unreadable_path(tmp_path):
    missing = tmp_path / "missing.tsv"
    with pytest.raises(ConfigurationError, match="cannot read external values"):
        Feature.from_parameters(
            {"name": "ext", "type": "external", "path": str(missing)},
            registry=ValueTableRegistry(),
        )


def test_external_features_share_one_table(tmp_path):
    path = tmp_path / "values.tsv"
    path.write_text("new york\t50\n")
    registry = ValueTableRegistry()

    features = FeatureSet.from_records(
        [
            {"name": "ext-2", "type": "external", "unigram": False, "path": str(path)},
            {"name": "ext-3", "type": "external", "unigram": False, "bigram": False, "path": str(path)},
        ],
        registry=registry,
    )

    assert features.bigram[0].values is features.trigram[0].values
    assert len(registry) == 1


def test_default_feature_set():
    features = FeatureSet.from_parameters(None)

    assert [(f.name, f.type, f.lambda_) for f in features.unigram] == [
        ("1-const", FeatureType.CONST, 0.8),
        ("1-lntf", FeatureType.LOGTF, 0.0),
        ("1-lndf", FeatureType.LOGDF, 0.0),
    ]
    assert [(f.name, f.type, f.lambda_) for f in features.bigram] == [
        ("2-const", FeatureType.CONST, 0.1),
        ("2-lntf", FeatureType.LOGTF, 0.0),
        ("2-lndf", FeatureType.LOGDF, 0.0),
    ]
    assert features.trigram == []


def test_configured_features_replace_defaults():
    features = FeatureSet.from_parameters(
        {
            "wsdmFeatures": [
                {"name": "u", "type": "const", "lambda": 0.5},
                {"name": "ub", "type": "logtf", "unigram": True, "bigram": True},
            ]
        }
    )

    assert [f.name for f in features.unigram] == ["u", "ub"]
    assert [f.name for f in features.bigram] == ["ub"]
    assert features.trigram == []
    assert [f.name for f in features] == ["u", "ub"]


def test_features_must_be_a_list_of_records():
    with pytest.raises(ConfigurationError, match="list of feature records"):
        FeatureSet.from_parameters({"wsdmFeatures": "1-const"})


def test_for_arity_bounds():
    with pytest.raises(ValueError):
        FeatureSet().for_arity(4)


def test_injected_registry_is_used_even_when_empty(tmp_path):
    path = tmp_path / "values.tsv"
    path.write_text("new york\t50\n")
    registry = ValueTableRegistry()

    feature = Feature.from_parameters(
        {"name": "ext", "type": "external", "unigram": False, "path": str(path)},
        registry=registry,
    )

    assert path in registry
    assert path not in ValueTableRegistry.shared()
    assert feature.values is registry.load(path)


def test_original_feature_key_is_accepted():
    features = FeatureSet.from_parameters({"rwsdmFeatures": [{"name": "c", "type": "const", "lambda": 0.5}]})
    assert [f.name for f in features.unigram] == ["c"]
    assert features.bigram == []
