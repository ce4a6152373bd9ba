"""Export the deletion log to CSV or JSON."""

import csv
import json

from .gmail_client import parse_from_header
from .models import DeletedMessageRecord

FIELDNAMES = ["id", "deleted_at", "sender", "sender_email", "subject", "rule_set_used"]


def _row(record: DeletedMessageRecord) -> dict:
    _name, email = parse_from_header(record.sender)
    return {
        "id": record.id,
        "deleted_at": record.deleted_at,
        "sender": record.sender,
        "sender_email": email.lower(),
        "subject": record.subject,
        "rule_set_used": record.rule_set_used,
    }


def export_deleted(records: list[DeletedMessageRecord], format: str, output_path: str) -> int:
    """Write deletion records to a file in the order they were recorded.

    Args:
        records: Records from the audit log.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.

    Returns the number of rows written.
    """
    rows = [_row(r) for r in records]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
            writer.writeheader()
            writer.writerows(rows)
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump(rows, f, indent=2)
    else:
        raise ValueError(f"Unsupported export format: {format}")

    return len(rows)
