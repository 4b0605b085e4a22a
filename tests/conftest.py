import pytest

from ahr_rotate.lobby import Lobby
from ahr_rotate.rotation import AutoHostRotate


@pytest.fixture
def sent():
    """Messages the lobby sent to chat, in order."""
    return []


@pytest.fixture
def lobby(sent):
    configuration = {
        "administrators": ["Admin"],
        "vote_skip": {"threshold_type": "percentage", "threshold_value": 51},
        "previous_queue": None,
    }
    return Lobby("#mp_1", send=sent.append, configuration=configuration)


@pytest.fixture
def rotation(lobby):
    return AutoHostRotate(lobby).attach()


@pytest.fixture
def hosted_lobby(lobby, rotation, sent):
    """Lobby with a, b and c present, a is host, queue [a, b, c], no messages recorded."""
    for name in ["a", "b", "c"]:
        lobby.player_joined(name)
    lobby.host_changed("a")
    sent.clear()
    return lobby
