"""Resource Tracker - scheduled resource checks with Telegram alerts."""
