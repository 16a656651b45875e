"""Values shared by fixtures and test modules."""

SIGNING_KEY_ID = "test-k2"
HISTORICAL_KEY_ID = "test-k1"
ENCRYPTION_SECRET = "unit-test-encryption-secret"
TOKEN_CONTRACT = "0x" + "ab" * 20
RPC_URL = "http://rpc.test"
