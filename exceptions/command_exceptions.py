"""
exceptions/command_exceptions.py

Command 단계 예외 처리 모듈

maplestory_command.py에서 사용되는 예외 클래스 정의
"""

from __future__ import annotations

from exceptions.base import CommandBaseException

class InvalidCommandFormat(CommandBaseException):
    """명령어 형식이 올바르지 않을 때 발생하는 오류 (캐릭터명 누락 등)"""
    pass

class CommandFailure(CommandBaseException):
    """명령어 실행에 실패했을 때 발생하는 오류 (사용자에게 안내 후 로깅용)"""
    pass
