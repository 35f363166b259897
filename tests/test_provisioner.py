from serverforge.forge.provisioner import ProvisionOutcome, ServiceProvisioner
from serverforge.forge.secretstore import SecretStore
from serverforge.models import load_catalogue


def provisioner(runner, retry):
    return ServiceProvisioner(runner, retry)


def secrets(paths):
    return SecretStore(paths.secrets_file).ensure()


def test_second_ensure_is_a_noop(runner, retry, paths):
    postgres = load_catalogue().get("postgres")
    bundle = secrets(paths)
    p = provisioner(runner, retry)

    assert p.ensure(postgres, bundle) == ProvisionOutcome.STARTED
    assert p.ensure(postgres, bundle) == ProvisionOutcome.PRESENT
    assert runner.count(["docker", "run"]) == 1
    assert runner.count(["docker", "pull"]) == 1


def test_named_volumes_are_created_bind_mounts_are_not(runner, retry, paths):
    portainer = load_catalogue().get("portainer")
    provisioner(runner, retry).ensure(portainer, secrets(paths))

    assert runner.matching(["docker", "volume", "create"]) == [["docker", "volume", "create", "portainer_data"]]


def test_existing_volume_is_not_an_error(runner, retry, paths):
    runner.volumes.add("pg_data")
    runner.on(["docker", "volume", "create"], returncode=1, output=b"volume already exists")

    outcome = provisioner(runner, retry).ensure(load_catalogue().get("postgres"), secrets(paths))

    assert outcome == ProvisionOutcome.STARTED


def test_secret_env_is_passed_by_name(runner, retry, paths):
    bundle = secrets(paths)
    provisioner(runner, retry).ensure(load_catalogue().get("postgres"), bundle)

    [run] = runner.matching(["docker", "run"])
    env = runner.envs[runner.calls.index(run)]
    password = bundle.value("POSTGRES_PASSWORD")

    assert password not in " ".join(run)
    assert env["POSTGRES_PASSWORD"] == password
    assert "--restart=always" in run
    assert run[run.index("POSTGRES_USER=admin") - 1] == "-e"


def test_secret_args_follow_the_command(runner, retry, paths):
    bundle = secrets(paths)
    provisioner(runner, retry).ensure(load_catalogue().get("redis"), bundle)

    [run] = runner.matching(["docker", "run"])
    assert run[-3:] == ["redis-server", "--requirepass", bundle.value("REDIS_PASSWORD")]


def test_additional_networks_are_connected(runner, retry, paths):
    provisioner(runner, retry).ensure(load_catalogue().get("nginx-proxy-manager"), secrets(paths))

    [run] = runner.matching(["docker", "run"])
    assert run[run.index("--network") + 1] == "frontend"
    assert runner.matching(["docker", "network", "connect"]) == [
        ["docker", "network", "connect", "backend", "nginx-proxy-manager"]]


def test_unreachable_registry_fails_without_raising(runner, retry, sleeps, paths):
    runner.on(["docker", "pull"], returncode=1, output=b"registry unreachable")

    outcome = provisioner(runner, retry).ensure(load_catalogue().get("grafana"), secrets(paths))

    assert outcome == ProvisionOutcome.FAILED
    assert runner.count(["docker", "pull"]) == 3
    assert sleeps == [5.0, 5.0]
    assert runner.count(["docker", "run"]) == 0


def test_start_failure_is_reported(runner, retry, paths):
    runner.on(["docker", "run"], returncode=125)

    outcome = provisioner(runner, retry).ensure(load_catalogue().get("watchtower"), secrets(paths))

    assert outcome == ProvisionOutcome.FAILED


def test_created_but_unstarted_container_is_started_on_rerun(runner, retry, paths):
    watchtower = load_catalogue().get("watchtower")
    bundle = secrets(paths)
    p = provisioner(runner, retry)
    runner.unstartable.add("watchtower")

    assert p.ensure(watchtower, bundle) == ProvisionOutcome.FAILED
    assert runner.containers["watchtower"]["running"] is False

    runner.unstartable.clear()
    assert p.ensure(watchtower, bundle) == ProvisionOutcome.STARTED
    assert runner.matching(["docker", "start"]) == [["docker", "start", "watchtower"]]
    assert runner.count(["docker", "run"]) == 1
    assert p.ensure(watchtower, bundle) == ProvisionOutcome.PRESENT


def test_restart_reconnects_missing_networks(runner, retry, paths):
    proxy = load_catalogue().get("nginx-proxy-manager")
    bundle = secrets(paths)
    p = provisioner(runner, retry)
    runner.on(["docker", "network", "connect"], returncode=1)

    assert p.ensure(proxy, bundle) == ProvisionOutcome.FAILED
    assert runner.containers["nginx-proxy-manager"]["networks"] == {"frontend"}

    runner.rules.clear()
    assert p.ensure(proxy, bundle) == ProvisionOutcome.PRESENT
    assert runner.containers["nginx-proxy-manager"]["networks"] == {"frontend", "backend"}


def test_os_error_fails_only_that_service(runner, retry, paths, monkeypatch):
    catalogue = load_catalogue()
    bundle = secrets(paths)
    p = provisioner(runner, retry)
    run = runner.run

    def run_without_redis(cmd, **kwargs):
        if cmd[:2] == ["docker", "run"] and "redis" in cmd:
            raise FileNotFoundError(2, "No such file or directory", "docker")
        return run(cmd, **kwargs)

    monkeypatch.setattr(runner, "run", run_without_redis)

    assert p.ensure(catalogue.get("redis"), bundle) == ProvisionOutcome.FAILED
    assert p.ensure(catalogue.get("postgres"), bundle) == ProvisionOutcome.STARTED
