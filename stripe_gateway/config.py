import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


class GatewayConfig(BaseModel):
    """Stripe credentials for both modes plus the active mode."""

    mode: Literal["test", "live"] = "test"
    secret_key_test: str = ""
    publishable_key_test: str = ""
    secret_key: str = ""
    publishable_key: str = ""

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        return cls(
            mode=os.getenv("STRIPE_MODE", "test"),
            secret_key_test=os.getenv("STRIPE_SECRET_KEY_TEST", ""),
            publishable_key_test=os.getenv("STRIPE_PUBLISHABLE_KEY_TEST", ""),
            secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            publishable_key=os.getenv("STRIPE_PUBLISHABLE_KEY", ""),
        )

    @property
    def active_secret_key(self) -> str:
        return self.secret_key_test if self.mode == "test" else self.secret_key

    @property
    def active_publishable_key(self) -> str:
        if self.mode == "test":
            return self.publishable_key_test
        return self.publishable_key
