"""Recompute denormalized counters from their sources of truth.

Answer tallies (``upvotes``/``downvotes``) are rebuilt from each answer's
vote ledger and question ``answers`` counts from the stored answers.

Usage:
    python reconcile.py

    # Report drift without writing:
    python reconcile.py --dry-run

    # Only one answer's tallies:
    python reconcile.py --answer 65f0c0ffee0123456789abcd
"""

import argparse
import asyncio
import logging
import sys

from bson import ObjectId

import config
from content import recount_question_answers
from database import MongoManager
from voting import recount_answer_tallies

logger = logging.getLogger("reconcile")


async def reconcile(dry_run: bool = False, answer_id: ObjectId = None) -> int:
    manager = MongoManager(attempts=1)
    db = await manager.connect()
    try:
        tallies = await recount_answer_tallies(db, answer_id=answer_id, dry_run=dry_run)
        logger.info(f"Answers with drifted tallies: {tallies}")

        counts = 0
        if answer_id is None:
            counts = await recount_question_answers(db, dry_run=dry_run)
            logger.info(f"Questions with drifted answer counts: {counts}")
    finally:
        await manager.close()

    return tallies + counts


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Repair denormalized vote and answer counters")
    parser.add_argument("--dry-run", action="store_true", help="report drift without writing")
    parser.add_argument("--answer", help="only recount this answer id")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    answer_id = None
    if args.answer:
        if not ObjectId.is_valid(args.answer):
            parser.error(f"not a valid answer id: {args.answer}")
        answer_id = ObjectId(args.answer)

    drifted = asyncio.run(reconcile(dry_run=args.dry_run, answer_id=answer_id))
    mode = "found" if args.dry_run else "repaired"
    print(f"{drifted} document(s) {mode}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
