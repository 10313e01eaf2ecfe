import pytest

from gpushare.consts import ConfigError
from gpushare.replicas import ReplicatedResources
from gpushare.sharing import Sharing, SharingStrategy, sharing_from_value

RESOURCES = {"resources": [{"name": "gpu", "replicas": 2}]}


def test_default_sharing_is_none():
    sharing = Sharing()
    assert sharing.sharing_strategy() is SharingStrategy.NONE
    assert sharing.replicated_resources() is sharing.time_slicing


def test_time_slicing_strategy():
    sharing = sharing_from_value({"timeSlicing": RESOURCES})
    assert sharing.sharing_strategy() is SharingStrategy.TIME_SLICING
    assert sharing.mps is None
    assert sharing.replicated_resources() is sharing.time_slicing


def test_mps_strategy_takes_precedence():
    sharing = sharing_from_value({"timeSlicing": RESOURCES, "mps": RESOURCES})
    assert sharing.sharing_strategy() is SharingStrategy.MPS
    assert sharing.replicated_resources() is sharing.mps


def test_mps_without_replication_falls_back():
    sharing = Sharing(mps=ReplicatedResources())
    assert sharing.sharing_strategy() is SharingStrategy.NONE
    assert sharing.replicated_resources() is sharing.mps


def test_strategy_values():
    assert str(SharingStrategy.MPS) == "mps"
    assert SharingStrategy("time-slicing") is SharingStrategy.TIME_SLICING
    assert SharingStrategy.NONE == "none"


def test_none_and_empty_values():
    assert sharing_from_value(None) == Sharing()
    assert sharing_from_value({}) == Sharing()
    assert sharing_from_value({"mps": None}).mps is None


@pytest.mark.parametrize(
    "value",
    [
        {"timeSlicing": {}},
        {"timeSlicing": None},
        {"mps": {"resources": []}},
        {"timeSlicing": {"resources": [{"name": "gpu", "replicas": 1}]}},
        ["timeSlicing"],
    ],
)
def test_invalid_sharing(value):
    with pytest.raises(ConfigError):
        sharing_from_value(value)


def test_round_trip():
    sharing = sharing_from_value({"timeSlicing": RESOURCES, "mps": RESOURCES})
    data = sharing.to_json()
    assert set(data) == {"timeSlicing", "mps"}
    assert sharing_from_value(data) == sharing


def test_to_json_omits_missing_mps():
    data = Sharing().to_json()
    assert "mps" not in data
    assert data["timeSlicing"] == {}