#tests\test_agent.py

"""Test node agent heartbeat loop and control plane client."""

import time

import pytest
import requests

from node_agent.agent import HeartbeatAgent
from node_agent.client import ControlPlaneClient, ControlPlaneError


class FakeControlPlane:
    """Stands in for ControlPlaneClient."""

    def __init__(self, failures=0, error_status=None, ack=None):
        self.failures = failures
        self.error_status = error_status
        self.ack = ack if ack is not None else {"recommended_interval_seconds": 10}
        self.registrations = []
        self.heartbeats = []
        self.deregistrations = []

    def register(self, node_id, cpu_cores):
        self.registrations.append((node_id, cpu_cores))
        return True

    def heartbeat(self, node_id, pod_statuses):
        self.heartbeats.append((node_id, pod_statuses))
        if self.failures:
            self.failures -= 1
            raise ControlPlaneError("unreachable", status_code=self.error_status)
        return self.ack

    def deregister(self, node_id, timeout=None):
        self.deregistrations.append((node_id, timeout))
        return True


def make_agent(client, **kwargs):
    options = dict(
        node_id="node-1",
        cpu_cores=4,
        interval=10,
        max_retries=5,
        base_delay=0.001,
        max_delay=0.01,
        shutdown_timeout=2,
    )
    options.update(kwargs)
    return HeartbeatAgent(client, **options)


class TestBackoff:
    """Test retry schedule."""

    def test_default_schedule(self):
        agent = HeartbeatAgent(FakeControlPlane(), node_id="node-1", cpu_cores=2)

        assert agent.backoff_delays() == [2, 4, 8, 16, 32]

    def test_capped(self):
        agent = HeartbeatAgent(
            FakeControlPlane(), node_id="node-1", cpu_cores=2,
            max_retries=7, base_delay=2, max_delay=60,
        )

        assert agent.backoff_delays() == [2, 4, 8, 16, 32, 60, 60]


class TestHeartbeat:
    """Test heartbeat sending."""

    def test_sends_pod_report(self):
        client = FakeControlPlane()
        agent = make_agent(client)
        agent.registered = True
        agent.track_pod("pod-1")
        agent.track_pod("pod-2", "pending")
        agent.forget_pod("pod-2")

        assert agent.send_heartbeat() is True
        assert client.heartbeats == [("node-1", {"pod-1": "running"})]

    def test_empty_report_until_pods_tracked(self):
        client = FakeControlPlane()
        agent = make_agent(client)
        agent.registered = True

        agent.send_heartbeat()
        agent.track_pod("pod-1")
        agent.send_heartbeat()

        assert client.heartbeats == [("node-1", {}), ("node-1", {"pod-1": "running"})]

    def test_retry_until_success(self):
        client = FakeControlPlane(failures=3)
        agent = make_agent(client)
        agent.registered = True

        assert agent.send_with_retry() is True
        assert len(client.heartbeats) == 4

    def test_gives_up_after_max_retries(self, caplog):
        client = FakeControlPlane(failures=100)
        agent = make_agent(client)
        agent.registered = True

        assert agent.send_with_retry() is False
        assert len(client.heartbeats) == 6
        assert "Max heartbeat retries reached" in caplog.text

    def test_not_found_resets_registration(self):
        client = FakeControlPlane(failures=1, error_status=404)
        agent = make_agent(client)
        agent.registered = True

        assert agent.send_with_retry() is False
        assert agent.registered is False
        assert len(client.heartbeats) == 1

    @pytest.mark.parametrize(
        "recommended, expected", [(20, 20.0), (1, 5.0), (600, 60.0), (None, 10.0)]
    )
    def test_recommended_interval_clamped(self, recommended, expected):
        client = FakeControlPlane(ack={"recommended_interval_seconds": recommended})
        agent = make_agent(client)
        agent.registered = True

        agent.send_heartbeat()

        assert agent.interval == expected


class TestLifecycle:
    """Test start/stop."""

    def test_registers_and_heartbeats(self):
        client = FakeControlPlane()
        agent = make_agent(client)

        agent.start()
        try:
            deadline = time.time() + 2
            while not client.heartbeats:
                assert time.time() < deadline
                time.sleep(0.01)
        finally:
            agent.stop()

        assert client.registrations == [("node-1", 4)]
        assert client.deregistrations == [("node-1", 2)]
        assert not agent.is_running()
        assert agent.registered is False

    def test_stop_without_deregister(self):
        client = FakeControlPlane()
        agent = make_agent(client)
        agent.registered = True

        agent.stop(deregister=False)

        assert client.deregistrations == []


class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json, timeout):
        self.calls.append((url, json, timeout))
        if self.error:
            raise self.error
        return self.response


class TestControlPlaneClient:
    """Test HTTP client error mapping."""

    def test_heartbeat_posts_statuses(self):
        session = FakeSession(FakeResponse(200, {"recommended_interval_seconds": 10}))
        client = ControlPlaneClient("http://api:5000/", session=session)

        ack = client.heartbeat("node-1", {"pod-1": "running"})

        assert ack["recommended_interval_seconds"] == 10
        assert session.calls == [
            ("http://api:5000/v1/nodes/node-1/heartbeat",
             {"pod_statuses": {"pod-1": "running"}}, 8.0),
        ]

    def test_register_conflict_is_not_error(self):
        session = FakeSession(FakeResponse(409, {"detail": "exists"}))
        client = ControlPlaneClient("http://api:5000", session=session)

        assert client.register("node-1", 2) is False

    def test_error_status_carried(self):
        session = FakeSession(FakeResponse(404, {"detail": "Node not found: node-1"}))
        client = ControlPlaneClient("http://api:5000", session=session)

        with pytest.raises(ControlPlaneError) as exc_info:
            client.heartbeat("node-1", {})

        assert exc_info.value.status_code == 404
        assert "Node not found" in str(exc_info.value)

    def test_timeout(self):
        session = FakeSession(error=requests.exceptions.Timeout())
        client = ControlPlaneClient("http://api:5000", timeout=1, session=session)

        with pytest.raises(ControlPlaneError) as exc_info:
            client.heartbeat("node-1", {})

        assert exc_info.value.status_code is None

    def test_deregister_best_effort(self):
        session = FakeSession(error=requests.exceptions.ConnectionError())
        client = ControlPlaneClient("http://api:5000", session=session)

        assert client.deregister("node-1", timeout=5) is False
        assert session.calls[0][0] == "http://api:5000/v1/nodes/node-1/shutdown"
        assert session.calls[0][2] == 5
