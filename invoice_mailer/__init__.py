"""Transactional invoice emails (HTML body + PDF attachment) over SMTP."""
