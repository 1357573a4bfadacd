class HabitTrackerError(Exception):
    """Base class for domain failures the API layer maps to HTTP responses."""


class ProgressNotFoundError(HabitTrackerError):
    """No progress row exists for the habit on the requested day."""

    def __init__(self, user_email: str, habit_name: str, progress_date) -> None:
        self.user_email = user_email
        self.habit_name = habit_name
        self.progress_date = progress_date
        super().__init__(f"No progress row for habit '{habit_name}' on {progress_date}")


class InvalidHabitDataError(HabitTrackerError):
    """The habit list returned by the store was not a sequence."""

    def __init__(self, message: str = "Invalid habits data") -> None:
        super().__init__(message)


class HabitNotFoundError(HabitTrackerError):
    pass


class HabitAlreadyExistsError(HabitTrackerError):
    pass


class UserNotFoundError(HabitTrackerError):
    pass


class UserAlreadyExistsError(HabitTrackerError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field.capitalize()} already exists")
