import subprocess

from bosonci.credentials import SecretNotFoundError, SecretResolver
from bosonci.dsl import clone, docker_build, docker_push, job, registry_login
from bosonci.executor import CIError, ExecutionContext, run_job
from bosonci.step_workflows.docker import build_command, registry_host
from bosonci.step_workflows.git import branch_name
from bosonci.ui.console import Console


class FakeRunner:
    """Records argv/stdin instead of running anything."""

    def __init__(self, fail=()):
        self.calls = []
        self.inputs = []
        self.fail = set(fail)

    def __call__(self, cmd, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        self.inputs.append(kwargs.get("input"))
        rc = 1 if " ".join(cmd) in self.fail else 0
        if kwargs.get("check") and rc:
            raise subprocess.CalledProcessError(rc, cmd)
        return subprocess.CompletedProcess(cmd, rc, stdout="")

    def without_version_checks(self):
        return [c for c in self.calls if c[1:] != ["--version"]]


def _ctx(tmp_path, runner, **kw):
    return ExecutionContext(workspace=tmp_path, runner=runner, console=Console(), **kw)


# ---------------------------------------------------------------------
# git
# ---------------------------------------------------------------------

def test_branch_name():
    assert branch_name("refs/heads/higgs-boson") == "higgs-boson"
    assert branch_name("refs/tags/v1.0") == "v1.0"
    assert branch_name("main") == "main"
    assert branch_name("HEAD") is None
    assert branch_name("refs/pull/7/head") is None
    assert branch_name("0123456789abcdef0123456789abcdef01234567") is None


def test_clone_branch_with_depth(tmp_path):
    runner = FakeRunner()
    ctx = _ctx(tmp_path, runner)
    url = "https://example.com/dockcross.git"
    result = run_job(job("j", clone("Clone", url, ref="refs/heads/higgs-boson", depth=1)), ctx)

    assert result.ok
    dest = str(ctx.workspace / "dockcross")
    assert runner.without_version_checks() == [
        ["git", "clone", "--depth", "1", "--branch", "higgs-boson", url, dest],
    ]


def test_clone_full_history_by_default(tmp_path):
    runner = FakeRunner()
    ctx = _ctx(tmp_path, runner)
    run_job(job("j", clone("Clone", "https://example.com/x.git", ref="main", dest="src/x")), ctx)
    (cmd,) = runner.without_version_checks()
    assert "--depth" not in cmd
    assert cmd[-1] == str(ctx.workspace / "src" / "x")


def test_clone_commit_fetches_exact_ref(tmp_path):
    runner = FakeRunner()
    ctx = _ctx(tmp_path, runner)
    sha = "0123456789abcdef0123456789abcdef01234567"
    run_job(job("j", clone("Clone", "https://example.com/x.git", ref=sha)), ctx)
    cmds = runner.without_version_checks()
    assert cmds[0][:3] == ["git", "clone", "--no-checkout"]
    assert cmds[1][-2:] == ["origin", sha]
    assert cmds[2][-1] == "FETCH_HEAD"


def test_clone_reuses_existing_checkout(tmp_path):
    (tmp_path / "x" / ".git").mkdir(parents=True)
    runner = FakeRunner()
    ctx = _ctx(tmp_path, runner)
    run_job(job("j", clone("Clone", "https://example.com/x.git", ref="main", depth=5)), ctx)
    cmds = runner.without_version_checks()
    assert [c[3] for c in cmds] == ["fetch", "checkout"]
    assert "--depth" in cmds[0]


def test_clone_failure_fails_job(tmp_path):
    url = "https://example.com/x.git"
    dest = str(tmp_path.resolve() / "x")
    runner = FakeRunner(fail={f"git clone --branch main {url} {dest}"})
    result = run_job(job("j", clone("Clone", url, ref="main")), _ctx(tmp_path, runner))
    assert result.status == "failed"
    assert result.failed_step.error.exit_code == 1


# ---------------------------------------------------------------------
# docker
# ---------------------------------------------------------------------

def test_build_command(tmp_path):
    step = docker_build(
        "Build",
        context="share",
        file="dockcross/Dockerfile.higgs-boson.manual",
        image="builder",
        labels={"vendor": "bitboson", "a": "b"},
    )
    ws = tmp_path.resolve()
    assert build_command(step, ws) == [
        "docker", "build",
        "-f", str(ws / "dockcross" / "Dockerfile.higgs-boson.manual"),
        "--label", "a=b",
        "--label", "vendor=bitboson",
        "-t", "builder",
        str(ws / "share"),
    ]


def test_build_command_keeps_absolute_context(tmp_path):
    step = docker_build("Build", context="/mnt/space/share/higgs-boson", file="Dockerfile", image="i")
    assert build_command(step, tmp_path)[-1] == "/mnt/space/share/higgs-boson"


def test_registry_host():
    assert registry_host(docker_push("p", "registry.example.com/team/img", "v1")) == "registry.example.com"
    assert registry_host(docker_push("p", "localhost:5000/img", "v1")) == "localhost:5000"
    assert registry_host(docker_push("p", "library/ubuntu", "v1")) is None
    assert registry_host(docker_push("p", "img", "v1", registry="r.example.com")) == "r.example.com"


def test_push_logs_in_with_resolved_secrets(tmp_path):
    runner = FakeRunner()
    secrets = SecretResolver({"REG_USER": "bob", "REG_TOKEN": "s3cret"}, use_environ=False)
    ctx = _ctx(tmp_path, runner, secrets=secrets)
    image = "registry.example.com/p/builder"
    step = docker_push("Push", image, "version1.0", "latest", credentials=registry_login("REG_USER", "REG_TOKEN"))

    result = run_job(job("j", step), ctx)

    assert result.ok
    cmds = runner.without_version_checks()
    assert cmds == [
        ["docker", "login", "--username", "bob", "--password-stdin", "registry.example.com"],
        ["docker", "tag", image, f"{image}:version1.0"],
        ["docker", "push", f"{image}:version1.0"],
        ["docker", "tag", image, f"{image}:latest"],
        ["docker", "push", f"{image}:latest"],
    ]
    assert "s3cret" in runner.inputs
    assert all("s3cret" not in arg for cmd in runner.calls for arg in cmd)


def test_push_without_secret_fails_before_pushing(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSING_TOKEN", raising=False)
    runner = FakeRunner()
    ctx = _ctx(tmp_path, runner, secrets=SecretResolver({"U": "bob"}))
    step = docker_push("Push", "r.example.com/img", "v1", credentials=registry_login("U", "MISSING_TOKEN"))

    result = run_job(job("j", step), ctx)

    assert result.status == "failed"
    assert isinstance(result.failed_step.error, SecretNotFoundError)
    assert not any(c[:2] == ["docker", "push"] for c in runner.calls)


def test_docker_unavailable(tmp_path):
    runner = FakeRunner(fail={"docker --version"})
    step = docker_build("Build", context=".", file="Dockerfile", image="i")
    result = run_job(job("j", step), _ctx(tmp_path, runner))
    err = result.failed_step.error
    assert isinstance(err, CIError)
    assert err.kind == "tool_unavailable"
    assert "Docker" in err.details["hint"]


def test_build_then_push_order(tmp_path):
    runner = FakeRunner()
    ctx = _ctx(tmp_path, runner)
    run_job(
        job(
            "image",
            docker_build("Build", context=".", file="Dockerfile", image="img"),
            docker_push("Push", "img", "v1"),
        ),
        ctx,
    )
    verbs = [c[1] for c in runner.without_version_checks()]
    assert verbs == ["build", "tag", "push"]
