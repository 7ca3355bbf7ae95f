from __future__ import annotations

from ..models.import_result import ImportResult

"""Summary line rendering for a finished import."""


def _format_seconds(seconds: float) -> str:
    if seconds <= 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        # 指数表記回避
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(module_id: str, result: ImportResult, elapsed_seconds: float) -> str:
    """Render the SUMMARY line.

    Format:
    SUMMARY module={module} total={total} success={success} errors={errors} elapsed_sec={elapsed}

    Examples:
        >>> render_summary_line("contacts", ImportResult(total=3, success=2, errors=1), 1.5)
        'SUMMARY module=contacts total=3 success=2 errors=1 elapsed_sec=1.5'
    """
    return (
        f"SUMMARY module={module_id} "
        f"total={result.total} "
        f"success={result.success} "
        f"errors={result.errors} "
        f"elapsed_sec={_format_seconds(elapsed_seconds)}"
    )
