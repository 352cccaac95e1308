"""Runtime configuration for coprocessor pipelines."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse


class Network(str, Enum):
    """Deployment environments a program can target."""

    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET = "mainnet"

    @classmethod
    def parse(cls, value: str) -> Network:
        normalized = value.strip().lower()
        for network in cls:
            if network.value == normalized:
                return network
        raise ValueError(
            f"Invalid network environment {value!r}, "
            "please select either devnet, testnet, or mainnet.",
        )


@dataclass(slots=True)
class TimeoutSettings:
    """Per-call deadlines and poll intervals for supervised commands."""

    quick_seconds: float = 50.0
    network_seconds: float = 300.0
    unbounded_seconds: float = 30_000.0
    quick_poll_seconds: float = 2.0
    poll_seconds: float = 5.0
    drain_seconds: float = 2.0


@dataclass(slots=True)
class SolverSettings:
    """Solver endpoints and remote job polling policy."""

    mainnet_url: str = "https://cartesi-coprocessor-solver.fly.dev"
    testnet_url: str = "https://cartesi-coprocessor-solver-dev.fly.dev"
    devnet_url: str = "http://127.0.0.1:3034"
    devnet_ipfs_url: str = "http://127.0.0.1:5001"
    max_retries: int = 5
    retry_interval_seconds: float = 5.0
    request_timeout_seconds: float = 30.0

    def url_for(self, network: Network) -> str:
        if network is Network.MAINNET:
            return self.mainnet_url
        if network is Network.TESTNET:
            return self.testnet_url
        return self.devnet_url


@dataclass(slots=True)
class StorageSettings:
    """Content-storage (w3) settings."""

    space_name: str = "cartesi-coprocessor-programs"


@dataclass(slots=True)
class DevnetSettings:
    """Local devnet checkout and compose settings."""

    repo_url: str = "https://github.com/zippiehq/cartesi-coprocessor"
    repo_dir: Path = field(
        default_factory=lambda: Path.home() / ".cartesi-coprocessor" / "cartesi-coprocessor-repo",
    )
    release_branch: str = "main"
    compose_file: str = "docker-compose-devnet.yaml"
    rpc_url: str = "http://127.0.0.1:8545"
    # Well-known first anvil account; only valid on the local devnet.
    private_key: str = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


@dataclass(slots=True)
class ProjectSettings:
    """Artifact paths and templates inside a coprocessor program checkout."""

    car_file: str = "output.car"
    cid_file: str = "output.cid"
    size_file: str = "output.size"
    image_hash_file: str = ".cartesi/image/hash"
    image_dir: str = ".cartesi/image"
    history_dir: str = "deployment_history"
    carize_image: str = "ghcr.io/zippiehq/cartesi-carize:latest"
    base_contract_repo: str = "https://github.com/Mugen-Builders/coprocessor-base-contract"
    template_branch: str = "wip/coprocessor"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    project_dir: Path = field(default_factory=Path.cwd)
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)
    solver: SolverSettings = field(default_factory=SolverSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    devnet: DevnetSettings = field(default_factory=DevnetSettings)
    project: ProjectSettings = field(default_factory=ProjectSettings)

    @classmethod
    def from_env(cls, project_dir: Path | None = None) -> Settings:
        """Load settings from ``COPRO_*`` environment variables."""

        defaults_devnet = DevnetSettings()
        return cls(
            project_dir=project_dir or Path(os.getenv("COPRO_PROJECT_DIR", "") or Path.cwd()),
            timeouts=TimeoutSettings(
                quick_seconds=_env_float("COPRO_QUICK_TIMEOUT_SECONDS", 50.0),
                network_seconds=_env_float("COPRO_NETWORK_TIMEOUT_SECONDS", 300.0),
                unbounded_seconds=_env_float("COPRO_UNBOUNDED_TIMEOUT_SECONDS", 30_000.0),
                quick_poll_seconds=_env_float("COPRO_QUICK_POLL_SECONDS", 2.0),
                poll_seconds=_env_float("COPRO_POLL_SECONDS", 5.0),
                drain_seconds=_env_float("COPRO_DRAIN_SECONDS", 2.0),
            ),
            solver=SolverSettings(
                mainnet_url=os.getenv(
                    "COPRO_MAINNET_SOLVER_URL",
                    "https://cartesi-coprocessor-solver.fly.dev",
                ),
                testnet_url=os.getenv(
                    "COPRO_TESTNET_SOLVER_URL",
                    "https://cartesi-coprocessor-solver-dev.fly.dev",
                ),
                devnet_url=os.getenv("COPRO_DEVNET_SOLVER_URL", "http://127.0.0.1:3034"),
                devnet_ipfs_url=os.getenv("COPRO_DEVNET_IPFS_URL", "http://127.0.0.1:5001"),
                max_retries=_env_int("COPRO_SOLVER_MAX_RETRIES", 5),
                retry_interval_seconds=_env_float("COPRO_SOLVER_RETRY_INTERVAL_SECONDS", 5.0),
                request_timeout_seconds=_env_float("COPRO_SOLVER_REQUEST_TIMEOUT_SECONDS", 30.0),
            ),
            storage=StorageSettings(
                space_name=os.getenv("COPRO_STORAGE_SPACE", "cartesi-coprocessor-programs"),
            ),
            devnet=DevnetSettings(
                repo_url=os.getenv("COPRO_DEVNET_REPO_URL", defaults_devnet.repo_url),
                repo_dir=Path(os.getenv("COPRO_DEVNET_REPO_DIR", "") or defaults_devnet.repo_dir),
                release_branch=os.getenv("COPRO_DEVNET_RELEASE_BRANCH", "main"),
                compose_file=os.getenv("COPRO_DEVNET_COMPOSE_FILE", "docker-compose-devnet.yaml"),
                rpc_url=os.getenv("COPRO_DEVNET_RPC_URL", "http://127.0.0.1:8545"),
                private_key=os.getenv("COPRO_DEVNET_PRIVATE_KEY", defaults_devnet.private_key),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for non-positive timings or malformed URLs."""

        for name in (
            "quick_seconds",
            "network_seconds",
            "unbounded_seconds",
            "quick_poll_seconds",
            "poll_seconds",
        ):
            if getattr(self.timeouts, name) <= 0:
                raise ValueError(f"Timeout setting {name} must be > 0.")
        if self.timeouts.drain_seconds < 0:
            raise ValueError("COPRO_DRAIN_SECONDS must be >= 0.")
        if self.solver.max_retries < 0:
            raise ValueError("COPRO_SOLVER_MAX_RETRIES must be >= 0.")
        if self.solver.retry_interval_seconds < 0:
            raise ValueError("COPRO_SOLVER_RETRY_INTERVAL_SECONDS must be >= 0.")
        for url in (
            self.solver.mainnet_url,
            self.solver.testnet_url,
            self.solver.devnet_url,
            self.solver.devnet_ipfs_url,
            self.devnet.rpc_url,
        ):
            _validate_http_url(url)
        if not self.storage.space_name.strip():
            raise ValueError("COPRO_STORAGE_SPACE must not be empty.")

    def project_path(self, relative: str) -> Path:
        return self.project_dir / relative


def _validate_http_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {raw!r}") from error


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error
