import pytest

from mint_gateway.config import GatewayConfig
from mint_gateway.models.inventory import Inventory
from mint_gateway.utils.challenge import ChallengeIssuer
from mint_gateway.utils.integrity import HmacTagger
from mint_gateway.utils.pow import solve_pow
from mint_gateway.utils.store import MemoryStore

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
OTHER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_records(total: int, reserved=()):
    return [
        {
            "index": i,
            "name": f"Neural Norse #{i + 1}",
            "metadataUri": f"https://arweave.net/manifest/{i}.json",
            "reserved": i in reserved,
        }
        for i in range(total)
    ]


def solve(issuer: ChallengeIssuer, identity: str, difficulty: int):
    """Issue a token for ``identity`` and solve it."""
    token = issuer.issue(identity).encoded
    candidate, _ = solve_pow(token, identity, difficulty)
    return token, candidate


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return GatewayConfig(
        CHALLENGE_SECRET="test-secret",
        TOTAL_SUPPLY=6,
        RESERVED_COUNT=2,
        POW_DIFFICULTY=2,
        MAX_PER_IDENTITY=3,
        IDENTITY_MIN_LENGTH=1,
        PAYMENT_DESTINATION="Treasury1111111111111111111111111111111111",
        LEDGER_ADDRESS="Ledger11111111111111111111111111111111111",
    )


@pytest.fixture
def inventory():
    # 6 items, indices 1 and 4 reserved -> public order 0, 2, 3, 5
    return Inventory.from_records(make_records(6, reserved={1, 4}))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def issuer(config, clock):
    return ChallengeIssuer(
        HmacTagger(config.CHALLENGE_SECRET),
        ttl_seconds=config.CHALLENGE_TTL_SECONDS,
        min_identity_length=config.IDENTITY_MIN_LENGTH,
        max_identity_length=config.IDENTITY_MAX_LENGTH,
        clock=clock,
    )
