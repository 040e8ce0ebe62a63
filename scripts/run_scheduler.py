#!/usr/bin/env python3
"""
Standalone daily rotation scheduler.
Use this when the web process does not embed the scheduler.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from salt_rotation.core import heartbeat
from salt_rotation.core.config import get_schedule_time, is_scheduler_enabled
from salt_rotation.core.orchestrator import get_orchestrator
from salt_rotation.core.schema import TriggerSource


def rotation_task():
    """Daily rotation. A failure is retried by the next run or the overdue check."""
    get_orchestrator().execute(TriggerSource.SCHEDULED)


def main():
    """Main entry point for scheduler script."""
    try:
        if not is_scheduler_enabled():
            print("❌ Scheduler requires ROTATION_SCHEDULER_ENABLED=true")
            sys.exit(1)

        # Catch up immediately if the last success is already stale
        get_orchestrator().check_overdue_and_run()

        heartbeat.ensure_scheduled(rotation_task)
        print(f"🏃 Daily salt rotation scheduled at {get_schedule_time()}")

        heartbeat.start()

    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
        heartbeat.stop()
    except Exception as e:
        print(f"💥 Critical error: {e}")
        heartbeat.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
