import nox

PYTHON_VERSION = "3.12"
PACKAGES = ["agents", "market", "metrics", "simulation"]
MODULES = ["main.py", "config.py", "logger.py", "sim_clock.py"]
TARGETS = PACKAGES + MODULES
EXCLUDES = [".nox", "__pycache__", "*.egg-info", "output", "tests/__pycache__"]

nox.options.sessions = ["lint", "tests"]


def _vulture(session: nox.Session) -> None:
    session.run(
        "vulture",
        *TARGETS,
        "--exclude",
        ",".join(EXCLUDES),
        "--min-confidence",
        "80",
        success_codes=[0, 3],
    )


@nox.session(python=PYTHON_VERSION)
def lint(session: nox.Session) -> None:
    """Check formatting, lint and types without rewriting files."""
    session.install(".[dev]")
    session.run("black", "--check", *TARGETS, "tests")
    session.run("isort", "--check-only", *TARGETS, "tests")
    session.run("ruff", "check", *TARGETS)
    session.run("mypy", *TARGETS)
    _vulture(session)
    session.run("lizard", *PACKAGES, "--exclude", ",".join(EXCLUDES), "-C", "15")


@nox.session(python=PYTHON_VERSION)
def tests(session: nox.Session) -> None:
    """Execute the pytest suite; extra arguments go straight to pytest."""
    session.install(".[dev]")
    session.run("pytest", *session.posargs)


@nox.session(python=PYTHON_VERSION)
def format(session: nox.Session) -> None:
    session.install("black", "isort")
    session.run("isort", *TARGETS, "tests")
    session.run("black", *TARGETS, "tests")


@nox.session(python=PYTHON_VERSION)
def simulate(session: nox.Session) -> None:
    """Short seeded run of the simulator with the sample config."""
    session.install(".")
    session.run(
        "range-market-sim",
        "--config",
        "config.yaml",
        env={"SIM_SEED": "42", "SIM_PROGRESS": "1"},
    )
