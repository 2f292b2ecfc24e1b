import argparse

from loguru import logger

from app.domain import SportCategory
from app.services.analysis_service import InferenceUnavailableError
from app.services.runtime import build_runtime
from app.core.config import get_settings


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the fixture and analysis caches")
    parser.add_argument(
        "--category",
        choices=[category.value for category in SportCategory],
        default=None,
        help="Restrict the listing to one sport category",
    )
    parser.add_argument(
        "--prefetch",
        type=int,
        default=0,
        metavar="N",
        help="Generate analyses for the first N listed fixtures",
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Bypass cached listings and analyses",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    runtime = build_runtime(get_settings())
    category = SportCategory(args.category) if args.category else None

    try:
        fixtures = runtime.fixtures.list_fixtures(category, force_refresh=args.refresh)
        logger.info("Listed {} fixtures", len(fixtures))
        for fixture in fixtures[: max(0, args.prefetch)]:
            try:
                artifact = runtime.analyses.get_analysis(fixture, force_refresh=args.refresh)
            except InferenceUnavailableError as exc:
                logger.warning("Skipping {}: {}", fixture.id, exc)
                continue
            logger.info(
                "Analysis ready for {} ({} predictions)", artifact.entity_id, len(artifact.predictions)
            )
    finally:
        runtime.close()


if __name__ == "__main__":
    main()
