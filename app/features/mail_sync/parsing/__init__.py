from .message_parser import parse_message

__all__ = ["parse_message"]
