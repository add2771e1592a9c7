import os
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))

BASE_CHAIN_ID = 8453
BASE_SEPOLIA_CHAIN_ID = 84532

# Known deployments keyed by chain id
CONTRACT_ADDRESSES = {
    BASE_SEPOLIA_CHAIN_ID: {
        "contests": "0x2de23490da5A155abEBCe591504a651C12475F96",
        "boxes": "0x981227a1B8d967a8812a1aD10B9AF64791B051D3",
        "quarters_only": "0xD768a2440924Bd16b950583966b0CBc92f19845d",
        "score_changes": "0xf69F876BBB478AD28C94a3E7b449230Fd88F56cB",
    },
    BASE_CHAIN_ID: {
        "contests": "0x58500b8479a5a156710471acb246d2efee54d52a",
        "boxes": "0x1a79b628151556299f1314b650058de6974f47e5",
        "quarters_only": "0xfd40868b115745fa435df2b7d9026881455b801f",
        "score_changes": "0x53d14af6c0717e7939aa702a0697a94db5f877c3",
    },
}

DEFAULT_RPC_URLS = {
    BASE_SEPOLIA_CHAIN_ID: "https://sepolia.base.org",
    BASE_CHAIN_ID: "https://mainnet.base.org",
}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-change-me"

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI and chain settings"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

        deployment = CONTRACT_ADDRESSES.get(self.CHAIN_ID, {})
        self.RPC_URL = os.environ.get("RPC_URL") or DEFAULT_RPC_URLS.get(
            self.CHAIN_ID, ""
        )
        self.CONTESTS_ADDRESS = os.environ.get(
            "CONTESTS_ADDRESS", deployment.get("contests", "")
        )
        self.BOXES_ADDRESS = os.environ.get(
            "BOXES_ADDRESS", deployment.get("boxes", "")
        )
        self.QUARTERS_ONLY_STRATEGY_ADDRESS = os.environ.get(
            "QUARTERS_ONLY_STRATEGY_ADDRESS", deployment.get("quarters_only", "")
        )
        self.SCORE_CHANGES_STRATEGY_ADDRESS = os.environ.get(
            "SCORE_CHANGES_STRATEGY_ADDRESS", deployment.get("score_changes", "")
        )

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "squares_db"
            db_user = os.environ.get("DB_USER") or "squares_user"
            db_password = os.environ.get("DB_PASSWORD") or "squares_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "squares.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Chain configuration
    CHAIN_ID = int(os.environ.get("CHAIN_ID") or BASE_CHAIN_ID)

    # Sports data API configuration
    SCORES_API_BASE_URL = (
        os.environ.get("SCORES_API_BASE_URL")
        or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
    )
    UPSTREAM_TIMEOUT = min(float(os.environ.get("UPSTREAM_TIMEOUT") or 10), 30.0)

    # Layer-1 cache (shared key-value store)
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", 300))
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "squares:"

    CONTEST_CACHE_TTL = 3600  # 1 hour
    CONTESTS_LIST_CACHE_TTL = int(os.environ.get("CONTESTS_LIST_CACHE_TTL", 60))
    GAME_DETAILS_CACHE_TTL = 3600  # 1 hour
    USER_PROFILE_CACHE_TTL = int(os.environ.get("USER_PROFILE_CACHE_TTL", 300))

    # Layer-2 cache staleness windows and polling (seconds)
    CONTEST_STALE_TIME = int(os.environ.get("CONTEST_STALE_TIME", 15))
    GAME_SCORES_STALE_TIME = int(os.environ.get("GAME_SCORES_STALE_TIME", 5))
    CONTEST_POLL_INTERVAL = 15
    GAME_SCORES_POLL_INTERVAL = 12
    GAME_SCORES_FAST_POLL_INTERVAL = 5

    # Settlement view
    WINNING_BOXES_PAGE_SIZE = int(os.environ.get("WINNING_BOXES_PAGE_SIZE") or 10)
    # Newest contests read from chain for listings and recent winners
    CONTESTS_LIST_LIMIT = int(os.environ.get("CONTESTS_LIST_LIMIT") or 20)

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = "10000 per day;1000 per hour"

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    SLOW_FUNCTION_THRESHOLD = float(os.environ.get("SLOW_FUNCTION_THRESHOLD", "1.0"))
    SLOW_REQUEST_THRESHOLD = float(os.environ.get("SLOW_REQUEST_THRESHOLD", "2.0"))

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        if self.CACHE_TYPE == "RedisCache":
            try:
                redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
                redis_client.ping()
            except redis.exceptions.ConnectionError:
                self.CACHE_TYPE = "SimpleCache"
                warnings.warn(
                    "🔶 Redis not available, falling back to SimpleCache for development.",
                    UserWarning,
                )


class ProductionConfig(Config):
    """Production configuration"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "🚨 PRODUCTION WARNING: SECRET_KEY not explicitly set!",
                UserWarning,
            )
        if not os.environ.get("CACHE_REDIS_URL"):
            warnings.warn(
                "🚨 PRODUCTION WARNING: CACHE_REDIS_URL not set, "
                "contest reads will always go to the chain.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    CHAIN_ID = BASE_CHAIN_ID
    CACHE_TYPE = "SimpleCache"
    SCHEDULER_ENABLED = False
    RATELIMIT_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
