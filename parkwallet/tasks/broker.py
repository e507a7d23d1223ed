"""TaskIQ broker and scheduler configuration."""

from taskiq import TaskiqScheduler
from taskiq.schedule_sources import LabelScheduleSource
from taskiq_postgresql import PostgresqlBroker

from parkwallet.config import settings

# Create PostgreSQL broker
broker = PostgresqlBroker(
    dsn=settings.SYNC_DATABASE_URL,
)

# Periodic tasks declare their cron in the ``schedule`` label
# Run with: taskiq scheduler worker:scheduler
scheduler = TaskiqScheduler(
    broker=broker,
    sources=[LabelScheduleSource(broker)],
)
