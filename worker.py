#!/usr/bin/env python
"""TaskIQ worker entry point."""

# Import broker and tasks to ensure they are registered
from parkwallet.tasks.broker import broker, scheduler
from parkwallet.tasks.reconciliation_tasks import reconcile_settlements_task

# TaskIQ CLI will use these when running:
#   taskiq worker worker:broker
#   taskiq scheduler worker:scheduler
