"""FitRPG progression and group-encounter engine."""
