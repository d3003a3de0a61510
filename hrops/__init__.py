"""HR Ops — leave balance ledger and request-lifecycle service."""
