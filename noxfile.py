import nox
import nox_uv

nox.options.default_venv_backend = "uv"
nox.options.reuse_venv = "yes"

POLARS_VERSIONS = ["1.20", "1.30"]


@nox_uv.session(python="3.10", uv_all_extras=True, uv_all_groups=True, uv_sync_locked=False)
@nox.parametrize("version", POLARS_VERSIONS)
def polars(session: nox.Session, version: str) -> None:
    """Test polars compatibility across minor versions."""
    session.install(f"polars=={version}.*")
    session.run("pytest", "--durations=10")
