"""마켓 데이터 동기화 엔진"""

__version__ = "1.0.0"
