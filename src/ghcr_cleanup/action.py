"""Async functional cleanup operations."""

import logging

import aiohttp

from .cleanup.orchestrator import CleanupOrchestrator
from .config import CleanupConfig
from .core.package_repo import PackageRepo
from .core.registry_client import RegistryClient
from .core.session import create_session
from .core.types import CleanupStatistics
from .exceptions import ConfigurationError
from .utils.matching import TagMatcher

logger = logging.getLogger(__name__)


async def select_packages(config: CleanupConfig, package_repo: PackageRepo) -> list[str]:
    """정리할 패키지 목록을 결정합니다.

    Args:
        config: 정리 설정
        package_repo: 패키지 목록 조회에 사용할 클라이언트

    Returns:
        list[str]: 패키지 이름 목록 (예: ["app", "app-worker"])

    Raises:
        ConfigurationError: 선택된 패키지가 없을 때
    """
    if config.expand_packages:
        available = await package_repo.get_package_list()
        packages = TagMatcher(config.package, config.use_regex).filter(available)
    else:
        packages = [name.strip() for name in config.package.split(",") if name.strip()]

    if not packages:
        raise ConfigurationError("No packages selected to cleanup")
    if len(packages) > 1:
        logger.info("Selected Packages")
        for name in packages:
            logger.info(name)
    return packages


async def cleanup_package(
    config: CleanupConfig,
    package: str,
    registry: RegistryClient,
    package_repo: PackageRepo,
) -> CleanupStatistics:
    """단일 패키지에 대해 정리 작업을 수행합니다.

    Args:
        config: 정리 설정
        package: 패키지 이름 (예: "myapp")
        registry: 레지스트리 클라이언트
        package_repo: 패키지 API 클라이언트

    Returns:
        CleanupStatistics: 해당 패키지의 삭제 통계

    Raises:
        RegistryError: 레지스트리 요청 실패 시
        PackageApiError: 패키지 API 요청 실패 시

    Examples:
        stats = await cleanup_package(config, "myapp", registry, package_repo)
        print(f"삭제된 이미지: {stats.number_images_deleted}")
    """
    orchestrator = CleanupOrchestrator(config, package, registry, package_repo)
    await orchestrator.init()
    await orchestrator.reload()
    return await orchestrator.run()


async def run_cleanup(
    config: CleanupConfig, session: aiohttp.ClientSession | None = None
) -> tuple[list[CleanupStatistics], CleanupStatistics]:
    """설정에 따라 모든 대상 패키지를 순차적으로 정리합니다.

    Args:
        config: 정리 설정 (build_config()로 생성)
        session: 공유할 aiohttp 세션 (생략 시 새로 생성 후 종료)

    Returns:
        tuple: (패키지별 통계 목록, 전체 합계 통계)

    Raises:
        ConfigurationError: 선택된 패키지가 없을 때
        RegistryError: 레지스트리 요청 실패 시
        PackageApiError: 패키지 API 요청 실패 시

    Examples:
        config = build_config()
        per_package, total = await run_cleanup(config)
        print(f"총 삭제: {total.number_images_deleted}")
    """
    owns_session = session is None
    if session is None:
        session = await create_session()

    try:
        package_repo = PackageRepo(
            config.owner,
            config.token,
            config.owner_type,
            config.github_api_url,
            config.dry_run,
            session=session,
        )
        config.is_private_repo, config.owner_type = await package_repo.get_repository(
            config.owner, config.repository
        )
        package_repo.owner_type = config.owner_type

        config.log_summary()
        if config.dry_run:
            logger.info("***** In dry run mode - No packages will be deleted *****")

        packages = await select_packages(config, package_repo)

        registry = RegistryClient(
            config.registry_url,
            config.owner,
            config.token,
            config.dry_run,
            session=session,
        )

        per_package: list[CleanupStatistics] = []
        total = CleanupStatistics("combined-action")
        for package in packages:
            stats = await cleanup_package(config, package, registry, package_repo)
            per_package.append(stats)
            total = total + stats

        if len(packages) > 1:
            total.log()
        return per_package, total
    finally:
        if owns_session and not session.closed:
            await session.close()
