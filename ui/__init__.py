"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    ProgressDisplay,
    console,
    create_histogram,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
    print_tier,
)
from .output import (
    append_csv,
    create_result_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

__all__ = [
    "ProgressDisplay",
    "append_csv",
    "console",
    "create_histogram",
    "create_result_json",
    "format_csv_header",
    "format_csv_row",
    "format_text_result",
    "print_final_results",
    "print_header",
    "print_latency_details",
    "print_speed_result",
    "print_tier",
    "save_json",
]
