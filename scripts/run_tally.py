#!/usr/bin/env python3
"""
Tally a quest from a file of extracted posts.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from analysis.ranking import RankingMethod  # noqa: E402
from data.database import TallyDatabase  # noqa: E402
from data.post_loader import PostLoader  # noqa: E402
from tally.options import PartitionMode, QuestOptions  # noqa: E402
from tally.tally import TallyEvent, VoteTally  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def log_event(event: TallyEvent):
    logger.info(f"[{event.status}] {event.phase} {event.detail}".rstrip())


def main():
    parser = argparse.ArgumentParser(description="Tally votes from quest posts")
    parser.add_argument("posts", help="CSV or JSON file of extracted posts")
    parser.add_argument("--quest", default="quest", help="Quest name (default: quest)")
    parser.add_argument("--db", help="DuckDB file to store posts and results in")
    parser.add_argument(
        "--partition",
        choices=[mode.value for mode in PartitionMode],
        default=PartitionMode.NONE.value,
        help="Partition mode (default: none)",
    )
    parser.add_argument(
        "--method",
        choices=[method.value for method in RankingMethod],
        default=RankingMethod.RATED_INSTANT_RUNOFF.value,
        help="Ranking method for rank and score votes",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat whitespace and punctuation as significant when matching votes",
    )
    parser.add_argument("--export", help="Export canonical votes to CSV file")

    args = parser.parse_args()

    if not Path(args.posts).exists():
        logger.error(f"Post file not found: {args.posts}")
        sys.exit(1)

    options = QuestOptions(
        partition_mode=args.partition,
        ranking_method=args.method,
        whitespace_and_punctuation_significant=args.strict,
    )

    try:
        with TallyDatabase(args.db or ":memory:") as db:
            loader = PostLoader(db)
            loader.load_file(args.posts, args.quest)
            posts = loader.get_posts(args.quest)

            tally = VoteTally(options)
            tally.subscribe(log_event)
            result = tally.run(posts)

            if args.db:
                db.save_results(args.quest, tally.storage.to_frame(), result.rankings_frame())
                print(f"✓ Results stored in {args.db}")
    except (ValueError, FileNotFoundError, RuntimeError) as e:
        logger.error(f"Tally failed: {e}")
        sys.exit(1)

    print(f"\n=== {args.quest}: {result.posts_counted} posts, {result.voters} voters ===")
    if result.forced_posts:
        print(f"Posts with unresolved references: {', '.join(result.forced_posts)}")

    votes = tally.storage.to_frame()
    print("\n=== Votes ===")
    for _, row in votes.sort_values("supporters", ascending=False).iterrows():
        task = f"[{row['task']}] " if row["task"] else ""
        print(f"{row['supporters']:>4}  {task}{row['content']}")

    for ranking in result.rankings:
        print(f"\n=== {ranking.category.name} {ranking.task or '(no task)'} ({ranking.method.value}) ===")
        for option in ranking.options:
            print(f"{option.rank:>3}. {option.content}  ({option.score:.3f})")

    if args.export:
        votes.to_csv(args.export, index=False)
        print(f"\n✓ Votes exported to {args.export}")


if __name__ == "__main__":
    main()
