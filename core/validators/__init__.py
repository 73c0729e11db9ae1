"""
Validators module

Boundary parsing/validation for bulk-write payloads
"""

from core.validators.bulk_write import parse_bulk_write_matrix, parse_time, parse_value

__all__ = ["parse_bulk_write_matrix", "parse_time", "parse_value"]
