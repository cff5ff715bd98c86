import pytest

from potnet.errors import (
    BridgeConfError,
    IncompleteSystemConfError,
    JlsError,
    PathError,
    PotError,
    WhichError,
)


def test_incomplete_system_conf_message():
    err = IncompleteSystemConfError()
    assert isinstance(err, PotError)
    assert str(err) == "System configuration incomplete"


def test_which_error_carries_command():
    err = WhichError("pot")
    assert isinstance(err, PotError)
    assert str(err) == "Command pot not found"
    assert err.command == "pot"


def test_path_error_carries_path():
    err = PathError("/")
    assert isinstance(err, PotError)
    assert str(err) == "Invalid Path / - no parent"
    assert err.path == "/"


def test_jls_error_message():
    err = JlsError()
    assert isinstance(err, PotError)
    assert str(err) == "jls failed"


def test_bridge_conf_error_message():
    err = BridgeConfError()
    assert isinstance(err, PotError)
    assert str(err) == "Invalid bridge configuration"


@pytest.mark.parametrize(
    "factory",
    [IncompleteSystemConfError, JlsError, BridgeConfError],
)
def test_errors_caught_as_pot_error(factory):
    with pytest.raises(PotError) as excinfo:
        raise factory()
    assert type(excinfo.value) is factory