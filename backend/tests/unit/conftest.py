import pytest

from fake_supabase import FakeSupabase

from app.models.fee_config import default_fee_config
from app.services.fee_config_service import FEE_CONFIG_TABLE


class RecordingNotifications:
    """记录通知调用，替代真实 NotificationService。"""

    def __init__(self):
        self.sent: list[dict] = []

    def create_notification(self, **kwargs):
        self.sent.append(kwargs)
        return kwargs

    def types(self) -> list[str]:
        return [n["type"] for n in self.sent]


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def notifications() -> RecordingNotifications:
    return RecordingNotifications()


@pytest.fixture
def seeded_fee_config(db: FakeSupabase) -> FakeSupabase:
    """把出厂默认收费表写入 fee_configs。"""
    db.seed(FEE_CONFIG_TABLE, default_fee_config().model_dump(mode="json"))
    return db
