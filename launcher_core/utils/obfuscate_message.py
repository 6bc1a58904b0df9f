"""
This module is to be used with loguru to remove potentially sensitive information such as the user's name
or API tokens.
"""

import re

# GitHub personal access tokens, classic and fine-grained
GITHUB_TOKEN_PATTERN = re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})")
BEARER_PATTERN = re.compile(r"(Bearer\s+)[^\s'\"]+", re.IGNORECASE)


def obfuscate_message(
    message: str, anonymize_path: bool = True, redact_tokens: bool = True
) -> str:
    """
    Obfuscate the message such that it does not reveal user information.

    The message may contain a path, in which case the path will be anonymized,
    or an authorization header or token, which will be redacted.

    Args:
        message: The message to obfuscate.
        anonymize_path: Whether to anonymize the path in the message.
        redact_tokens: Whether to redact bearer and GitHub tokens.

    Returns:
        The obfuscated message.
    """
    if anonymize_path:
        message = _anonymize_path(message)
    if redact_tokens:
        message = _redact_tokens(message)

    return message


def _anonymize_path(message: str) -> str:
    """
    Anonymize the path in the message such that
    it does not reveal user information such as usernames.

    The input message may or may not contain a path at all.

    OS agnostic.
    """
    # Windows - Only remove the username, keep the drive letter
    message = re.sub(r"([A-Z]:\\Users\\)[^\\]+\\", r"\1...\\", message)
    # Linux - Only remove the username
    message = re.sub(r"/home/[^/]+/", r"/home/.../", message)
    # macOS
    message = re.sub(r"/Users/[^/]+/", r"/Users/.../", message)

    return message


def _redact_tokens(message: str) -> str:
    message = BEARER_PATTERN.sub(r"\1***", message)
    return GITHUB_TOKEN_PATTERN.sub("***", message)
