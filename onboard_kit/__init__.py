"""
onboard_kit
-----------

GpuBudget 클라우드 계정 온보딩 CLI 패키지.
GCP 프로젝트 또는 Azure 구독을 조회하고, 최소 권한의 서비스 계정/관리 ID를 만든 뒤
발급된 자격 증명을 GpuBudget 백엔드에 등록하는 것을 목표로 한다.
"""

__version__ = "0.3.0"

__all__ = [
    "config",
    "orchestrator",
]
