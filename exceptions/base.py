"""
exceptions/base.py

공통 예외 처리 모듈

설정 / 클라이언트(API) / 명령어 단계별 기본 예외 클래스를 정의합니다.

"""

# 기본 bot 예외 클래스
class BotBaseException(Exception):
    """Bot 기본 예외 클래스"""

class BotConfigFailed(BotBaseException):
    """설정값 검증 실패 (캐시 TTL, 최대 크기, 지역 등)"""

class BotInitializationError(BotBaseException):
    """봇 초기화 실패 (토큰, API 키 누락)"""

class BotWarning(Exception):
    """작업을 중단하지 않고 경고 메시지를 표시할 때 사용"""
    pass

# client 단계 예외 클래스
class ClientBaseException(Exception):
    """Client 기본 예외 클래스 (nexon_client.py, maplescouter_client.py, renderer.py)"""

# command 단계 예외 클래스
class CommandBaseException(Exception):
    """Command 기본 예외 클래스 (maplestory_command.py)"""
