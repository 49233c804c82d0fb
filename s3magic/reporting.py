from __future__ import annotations
"""Plain-text rendering of run results and package metadata."""
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, metadata, version

from .models import DeleteFailure, RunSummary

DIST_NAME = "s3magic"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    summary: str


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(
            name=dist_name,
            version="0+unknown",
            summary="Bulk-delete every object in an S3 bucket.",
        )
    return PackageInfo(
        name=distribution_metadata.get("Name") or dist_name,
        version=package_version,
        summary=distribution_metadata.get("Summary") or "",
    )


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def format_failure(failure: DeleteFailure) -> str:
    return f"  - {failure.key}: {failure.message} ({failure.code})"


def render_report(summary: RunSummary) -> list[str]:
    lines = [
        f"Bucket '{summary.bucket}': listed {plural(summary.listed, 'object')} "
        f"across {plural(summary.pages, 'page')}",
        f"Successfully deleted {plural(summary.succeeded, 'object')}",
    ]
    if summary.failures:
        lines.append(f"Failed to delete {plural(summary.failed, 'object')}:")
        lines.extend(
            format_failure(failure)
            for failure in sorted(summary.failures, key=lambda item: item.key)
        )
    return lines
