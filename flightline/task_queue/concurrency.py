"""Concurrency validation for the task queue."""


class ConcurrencyValidator:
    """Decides whether another task may become active."""

    @staticmethod
    def can_start_new_task(active_count: int, concurrency: int, paused: bool) -> bool:
        """Check if admission is open and a slot is free.

        Args:
            active_count: Tasks currently running
            concurrency: Maximum simultaneously running tasks
            paused: Whether admission is paused

        Returns:
            True if a new task can start
        """
        if paused:
            return False
        return active_count < concurrency
