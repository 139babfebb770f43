import asyncio
import json

import structlog
from prometheus_client import CollectorRegistry, write_to_textfile

from studygen.cli import artifact_to_dict, build_request, build_source, parse_args
from studygen.errors import StudyGenError
from studygen.logging import setup_logging
from studygen.metrics import GenerationMetrics
from studygen.service import create_service

logger = structlog.get_logger()


def main(argv: "list[str] | None" = None) -> "None":
    config, args = parse_args(argv)
    setup_logging(config.log_level, config.log_json)

    try:
        if args.command == "title":
            source = build_source(args)
        else:
            request = build_request(args)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("source_read_failed", error=str(exc))
        raise SystemExit(f"Cannot read source file: {exc}") from exc

    registry = CollectorRegistry()
    metrics = GenerationMetrics(registry=registry) if config.metrics_textfile else None
    service = create_service(config, metrics)
    if not service.has_configured_provider():
        raise SystemExit(
            "No providers configured. Set ANTHROPIC_API_KEY or GEMINI_API_KEY."
        )

    async def _run() -> "str":
        try:
            if args.command == "title":
                return await service.suggest_title(source)

            artifact = await service.generate(request)
            return json.dumps(artifact_to_dict(artifact), ensure_ascii=False, indent=2)
        finally:
            await service.close()

    try:
        output = asyncio.run(_run())
    except StudyGenError as exc:
        logger.error("generation_failed", error=str(exc), category=exc.category)
        raise SystemExit(f"{type(exc).__name__}: {exc}") from exc
    finally:
        if metrics is not None:
            write_to_textfile(config.metrics_textfile, registry)
            logger.info("metrics_written", path=config.metrics_textfile)

    print(output)


if __name__ == "__main__":
    main()
