"""
Bundled swap scripts for the ScriptSwap strategy.

The script runs after the application has exited: it waits for the
updating process to go away, moves the live installation to the backup
location, moves the staged release into place, restores the backup if
that fails, and relaunches the application.

Both scripts accept the arguments the ScriptSwap strategy passes:
``--pid --stage --install --backup --executable --log``; anything after
``--`` is forwarded to the relaunched application. When ``--install``
is a macOS ``.app`` bundle, the bundle itself is relaunched with ``open``.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

from autoupdater import env
from autoupdater.errors import InvalidArgumentError
from autoupdater.logging import get_logger

logger = get_logger(__name__)

POSIX = "posix"
WINDOWS = "win"

_POSIX_SWAP_SCRIPT = textwrap.dedent(
    """\
    #!/bin/sh
    set -u

    PID=""
    STAGE=""
    INSTALL=""
    BACKUP=""
    EXECUTABLE=""
    LOG="/dev/null"

    while [ $# -gt 0 ]; do
        case "$1" in
            --pid) PID="$2"; shift 2 ;;
            --stage) STAGE="$2"; shift 2 ;;
            --install) INSTALL="$2"; shift 2 ;;
            --backup) BACKUP="$2"; shift 2 ;;
            --executable) EXECUTABLE="$2"; shift 2 ;;
            --log) LOG="$2"; shift 2 ;;
            --) shift; break ;;
            *) break ;;
        esac
    done

    log() {
        printf '%s %s\\n' "$(date '+%Y-%m-%d %H:%M:%S')" "$*" >> "$LOG" 2>/dev/null
    }

    if [ -z "$STAGE" ] || [ -z "$INSTALL" ] || [ -z "$BACKUP" ] || [ -z "$EXECUTABLE" ]; then
        echo "usage: $0 --stage DIR --install DIR --backup DIR --executable NAME [--pid PID] [--log FILE]" >&2
        exit 2
    fi

    mkdir -p "$(dirname "$LOG")" 2>/dev/null

    if [ -n "$PID" ]; then
        log "Waiting for process $PID to exit"
        while kill -0 "$PID" 2>/dev/null; do
            sleep 1
        done
    fi

    INCOMING="$INSTALL.incoming.$$"
    rm -rf "$INCOMING"
    if ! cp -R "$STAGE" "$INCOMING"; then
        log "Failed to copy $STAGE next to $INSTALL"
        rm -rf "$INCOMING"
        exit 1
    fi

    rm -rf "$BACKUP"
    mkdir -p "$(dirname "$BACKUP")"
    if ! mv "$INSTALL" "$BACKUP"; then
        log "Failed to move $INSTALL to $BACKUP"
        rm -rf "$INCOMING"
        exit 1
    fi

    if ! mv "$INCOMING" "$INSTALL"; then
        log "Failed to move new release into $INSTALL, restoring backup"
        mv "$BACKUP" "$INSTALL"
        rm -rf "$INCOMING"
        exit 1
    fi

    log "Swapped $STAGE into $INSTALL (backup at $BACKUP)"

    case "$INSTALL" in
        *.app) exec open -n -a "$INSTALL" --args "$@" ;;
    esac
    cd "$INSTALL" || exit 1
    exec "$INSTALL/$EXECUTABLE" "$@"
    """
)

_WINDOWS_SWAP_SCRIPT = textwrap.dedent(
    """\
    @echo off
    setlocal EnableExtensions

    set "PID="
    set "STAGE="
    set "INSTALL="
    set "BACKUP="
    set "EXECUTABLE="
    set "LOG=NUL"
    set "ARGS="

    :parse
    if "%~1"=="" goto parsed
    if "%~1"=="--" (
        shift
        goto forward
    )
    if /I "%~1"=="--pid" (
        set "PID=%~2"
        shift & shift
        goto parse
    )
    if /I "%~1"=="--stage" (
        set "STAGE=%~2"
        shift & shift
        goto parse
    )
    if /I "%~1"=="--install" (
        set "INSTALL=%~2"
        shift & shift
        goto parse
    )
    if /I "%~1"=="--backup" (
        set "BACKUP=%~2"
        shift & shift
        goto parse
    )
    if /I "%~1"=="--executable" (
        set "EXECUTABLE=%~2"
        shift & shift
        goto parse
    )
    if /I "%~1"=="--log" (
        set "LOG=%~2"
        shift & shift
        goto parse
    )
    shift
    goto parse

    :forward
    if "%~1"=="" goto parsed
    set ARGS=%ARGS% %1
    shift
    goto forward
    :parsed

    if "%STAGE%"=="" exit /b 2
    if "%INSTALL%"=="" exit /b 2
    if "%BACKUP%"=="" exit /b 2
    if "%EXECUTABLE%"=="" exit /b 2

    if "%PID%"=="" goto swap
    :wait
    tasklist /FI "PID eq %PID%" 2>NUL | find "%PID%" >NUL
    if errorlevel 1 goto swap
    timeout /t 1 /nobreak >NUL
    goto wait

    :swap
    set "INCOMING=%INSTALL%.incoming"
    if exist "%INCOMING%" rmdir /s /q "%INCOMING%"
    robocopy "%STAGE%" "%INCOMING%" /E /NFL /NDL /NJH /NJS >NUL
    if errorlevel 8 (
        call :log "Failed to copy %STAGE% next to %INSTALL%"
        if exist "%INCOMING%" rmdir /s /q "%INCOMING%"
        exit /b 1
    )

    if exist "%BACKUP%" rmdir /s /q "%BACKUP%"
    move "%INSTALL%" "%BACKUP%" >NUL
    if errorlevel 1 (
        call :log "Failed to move %INSTALL% to %BACKUP%"
        rmdir /s /q "%INCOMING%"
        exit /b 1
    )

    move "%INCOMING%" "%INSTALL%" >NUL
    if errorlevel 1 (
        call :log "Failed to move new release into %INSTALL%, restoring backup"
        move "%BACKUP%" "%INSTALL%" >NUL
        rmdir /s /q "%INCOMING%"
        exit /b 1
    )

    call :log "Swapped %STAGE% into %INSTALL% (backup at %BACKUP%)"
    start "" /D "%INSTALL%" "%INSTALL%\\%EXECUTABLE%"%ARGS%
    exit /b 0

    :log
    >> "%LOG%" echo %DATE% %TIME% %~1
    exit /b 0
    """
)

_SCRIPTS = {
    POSIX: _POSIX_SWAP_SCRIPT,
    WINDOWS: _WINDOWS_SWAP_SCRIPT,
}


def default_script_platform() -> str:
    """Return the script flavour for the running platform."""
    return WINDOWS if env.PLATFORM == "win" else POSIX


def default_script_name(script_platform: str | None = None) -> str:
    """Return the conventional file name for the bundled swap script."""
    script_platform = script_platform or default_script_platform()
    return "swap.bat" if script_platform == WINDOWS else "swap.sh"


def render_swap_script(script_platform: str | None = None) -> str:
    """
    Return the bundled swap script source.

    Args:
        script_platform: ``"posix"`` or ``"win"``; defaults to the running
            platform.

    Raises:
        InvalidArgumentError: For an unknown platform.
    """
    script_platform = script_platform or default_script_platform()
    try:
        return _SCRIPTS[script_platform]
    except KeyError:
        raise InvalidArgumentError(
            f"Unknown swap script platform: {script_platform}",
            details={"platform": script_platform, "valid": sorted(_SCRIPTS)},
        ) from None


def write_swap_script(path: Path | str, script_platform: str | None = None) -> Path:
    """
    Write the bundled swap script to ``path``.

    POSIX scripts are marked executable; Windows scripts use CRLF line
    endings.

    Returns:
        The written path.
    """
    script_platform = script_platform or default_script_platform()
    content = render_swap_script(script_platform)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    newline = "\r\n" if script_platform == WINDOWS else "\n"
    with open(path, "w", encoding="utf-8", newline=newline) as f:
        f.write(content)

    if script_platform == POSIX:
        path.chmod(0o755)

    logger.info(
        "Wrote swap script",
        extra={"path": str(path), "platform": script_platform},
    )
    return path
