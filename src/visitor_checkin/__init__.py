"""QR invitation visitor check-in backend."""
