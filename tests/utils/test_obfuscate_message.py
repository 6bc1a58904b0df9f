from launcher_core.utils.obfuscate_message import (
    _anonymize_path,
    _redact_tokens,
    obfuscate_message,
)


def test__anonymize_path_windows_path_only() -> None:
    message = r"C:\Users\user\AppData\Local\RecompLauncher\update_check.json"
    expected = r"C:\Users\...\AppData\Local\RecompLauncher\update_check.json"
    assert _anonymize_path(message) == expected

    message = r"D:\Users\abc\Games\mods\file.nrm"
    expected = r"D:\Users\...\Games\mods\file.nrm"
    assert _anonymize_path(message) == expected


def test__anonymize_path_linux_and_macos() -> None:
    assert (
        _anonymize_path("Failed to copy /home/user/.local/share/file: error")
        == "Failed to copy /home/.../.local/share/file: error"
    )
    assert (
        _anonymize_path("/Users/someone/Library/Logs/RecompLauncher.log")
        == "/Users/.../Library/Logs/RecompLauncher.log"
    )


def test__anonymize_path_no_path() -> None:
    message = "Launcher is up to date"
    assert _anonymize_path(message) == message


def test__redact_tokens() -> None:
    token = "ghp_" + "a1B2" * 9
    assert _redact_tokens(f"token {token} rejected") == "token *** rejected"
    assert _redact_tokens("Authorization: Bearer abc.def") == "Authorization: Bearer ***"
    assert _redact_tokens("github_pat_" + "x" * 30) == "***"


def test_obfuscate_message_flags() -> None:
    message = "Bearer secret at /home/user/file"
    assert obfuscate_message(message) == "Bearer *** at /home/.../file"
    assert (
        obfuscate_message(message, anonymize_path=False)
        == "Bearer *** at /home/user/file"
    )
    assert (
        obfuscate_message(message, redact_tokens=False)
        == "Bearer secret at /home/.../file"
    )
