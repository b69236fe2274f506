#!/usr/bin/env python3
"""Script for manually blocking or unblocking a slot."""

import argparse
import asyncio

from loguru import logger

from clinic.db.engine import close_engine
from clinic.exceptions import ClinicError
from clinic.scheduling import ScheduleManager


async def change_slot(schedule_id: int, slot_id: int, unblock: bool = False) -> None:
    """Block or unblock a slot."""
    manager = ScheduleManager()
    try:
        if unblock:
            slot = await manager.unblock_slot(schedule_id, slot_id)
        else:
            slot = await manager.block_slot(schedule_id, slot_id)
    except ClinicError as e:
        logger.error(f"Slot {slot_id} of schedule {schedule_id} unchanged: {e}")
        return
    finally:
        await close_engine()

    logger.success(
        f"Slot {slot_id} of schedule {schedule_id} "
        f"({slot.start_time}-{slot.end_time}) is now {slot.state.value}",
    )


async def main() -> None:
    """Main function."""
    parser = argparse.ArgumentParser(description="Manual slot blocking")
    parser.add_argument(
        "--schedule_id",
        type=int,
        required=True,
        help="Schedule ID",
    )
    parser.add_argument(
        "--slot_id",
        type=int,
        required=True,
        help="Slot ID",
    )
    parser.add_argument(
        "--unblock",
        action="store_true",
        help="Make a blocked slot available again",
    )

    args = parser.parse_args()

    await change_slot(args.schedule_id, args.slot_id, args.unblock)


if __name__ == "__main__":
    asyncio.run(main())
