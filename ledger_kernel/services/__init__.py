"""Kernel services: code sequencing and the ledger writer."""
