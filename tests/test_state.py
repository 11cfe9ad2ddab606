import pytest

from pvcfleet.lib.dataclasses import BootstrapState
from pvcfleet.lib.errors import NotBootstrappedError, StateCorruptError
from pvcfleet.lib.state import (
    STATE_FILE,
    load_state,
    read_state_server_instances,
    save_state,
    state_server_hostnames,
    write_state,
)


def test_not_bootstrapped(storage):
    with pytest.raises(NotBootstrappedError):
        read_state_server_instances(storage)


@pytest.mark.parametrize("expected", [[], ["inst-0"], ["inst-0", "inst-1"]])
def test_state_server_instances(storage, expected):
    save_state(storage, BootstrapState(state_instances=expected))

    assert sorted(read_state_server_instances(storage)) == sorted(expected)


def test_write_state_replaces_whole_record(storage):
    write_state(storage, ["inst-0", "inst-1"])
    write_state(storage, ["inst-2"])

    assert load_state(storage) == BootstrapState(state_instances=["inst-2"])


def test_state_record_is_yaml(storage):
    write_state(storage, ["inst-0"])

    assert storage.get(STATE_FILE) == b"state-instances:\n- inst-0\n"


@pytest.mark.parametrize(
    "record",
    [
        b"state-instances: [unterminated",
        b"",
        b"- /api/1.0/nodes/node0/\n",
        b"state-instances: /api/1.0/nodes/node0/\n",
        b"other-key: []\n",
    ],
)
def test_corrupt_state(storage, record):
    storage.put(STATE_FILE, record)

    # The record exists, so this is never reported as not bootstrapped
    with pytest.raises(StateCorruptError):
        load_state(storage)


def test_null_state_instances(storage):
    storage.put(STATE_FILE, b"state-instances:\n")

    assert read_state_server_instances(storage) == []


def test_state_server_hostnames(fleet, storage):
    node = fleet.new_node("node0", hostname="host0")
    write_state(storage, [node.id, "/api/1.0/nodes/gone/"])

    assert state_server_hostnames(fleet, storage) == ["host0"]
