"""Purchase order and invoice PDF extraction."""
