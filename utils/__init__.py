"""portik Utils"""
from utils.logger     import get_logger, set_level, log
from utils.validators import validate_port, validate_proto, compact_cmdline, parse_duration
from utils.constants  import Protocol, Severity, DiagnosticKind, StartedByKind, PatternKind
from utils.config     import load_config
from utils.shell      import run_command, CommandError, ToolNotFoundError
__all__ = ["get_logger", "set_level", "log",
           "validate_port", "validate_proto", "compact_cmdline", "parse_duration",
           "Protocol", "Severity", "DiagnosticKind", "StartedByKind", "PatternKind",
           "load_config", "run_command", "CommandError", "ToolNotFoundError"]
