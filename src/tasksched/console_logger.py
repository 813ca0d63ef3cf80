from rich.console import Console

from tasksched.logging import Logger, LogLevel

# Applied unless the caller passes its own style
LEVEL_STYLES = {
    LogLevel.FATAL: "bold red",
    LogLevel.ERROR: "red",
    LogLevel.WARN: "yellow",
    LogLevel.DEBUG: "dim",
    LogLevel.TRACE: "dim",
}


class ConsoleLogger(Logger):
    """Prints scheduler progress and diagnostics to a Rich console.

    Messages more verbose than the active level are dropped. Failures and
    warnings are coloured by level, so callers only mark up task names.
    """

    def __init__(self, console: Console, level: LogLevel = LogLevel.INFO) -> None:
        self._console = console
        self._levels = [level]

    @property
    def level(self) -> LogLevel:
        return self._levels[-1]

    def enabled(self, level: LogLevel) -> bool:
        return self.level.value >= level.value

    def log(self, level: LogLevel = LogLevel.INFO, *args, **kwargs) -> None:
        if not self.enabled(level):
            return
        style = LEVEL_STYLES.get(level)
        if style is not None:
            kwargs.setdefault("style", style)
        self._console.print(*args, **kwargs)

    def push_level(self, level: LogLevel) -> None:
        self._levels.append(level)

    def pop_level(self) -> LogLevel:
        """Return to the previous level.

        Raises:
            RuntimeError: If only the level given at construction is left
        """
        if len(self._levels) == 1:
            raise RuntimeError("Cannot pop the base log level")
        return self._levels.pop()
