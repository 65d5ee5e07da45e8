"""
Tests for the connectivity monitor and the reachability probe.
"""

import asyncio

import httpx
import pytest

from src.sync import ConnectivityMonitor, NetworkState, ReachabilityProbe


class TestNetworkState:
    """Online means connected AND reachable."""

    @pytest.mark.parametrize(
        "connected, reachable, offline",
        [
            (True, True, False),
            (True, False, True),
            (True, None, True),
            (False, None, True),
        ],
    )
    def test_offline_reading(self, connected, reachable, offline):
        """Test that unknown reachability counts as offline."""
        state = NetworkState(is_connected=connected, is_internet_reachable=reachable)
        assert state.offline is offline


class TestConnectivityMonitor:
    """Transition notifications."""

    def test_listeners_only_hear_transitions(self):
        """Test that repeated readings do not re-notify."""
        monitor = ConnectivityMonitor()
        heard = []
        monitor.subscribe(heard.append)

        monitor.set_offline(False)
        monitor.set_offline(True)
        monitor.set_offline(True)
        monitor.update(NetworkState(is_connected=True, is_internet_reachable=True))

        assert heard == [True, False]
        assert not monitor.is_offline

    def test_unsubscribe(self):
        """Test that an unsubscribed listener hears nothing."""
        monitor = ConnectivityMonitor()
        heard = []
        unsubscribe = monitor.subscribe(heard.append)
        unsubscribe()
        unsubscribe()

        monitor.set_offline(True)

        assert heard == []


class TestReachabilityProbe:
    """Probe results from HTTP responses."""

    def test_any_response_means_online(self):
        """Test that even an error status proves reachability."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        probe = ReachabilityProbe("https://demo.supabase.co/rest/v1/", client=client)

        state = asyncio.run(probe.check())

        assert not state.offline

    def test_transport_error_means_offline(self):
        """Test that a failed connection reads as offline."""

        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        probe = ReachabilityProbe("https://demo.supabase.co/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        state = asyncio.run(probe.check())

        assert state.offline

    def test_watch_feeds_the_monitor(self):
        """Test that watch() turns probe results into transitions."""
        answers = iter([True, False, False])

        def handler(request):
            if next(answers, False):
                raise httpx.ConnectError("down", request=request)
            return httpx.Response(200)

        probe = ReachabilityProbe("https://demo.supabase.co/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        monitor = ConnectivityMonitor()
        heard = []
        monitor.subscribe(heard.append)

        async def scenario():
            task = asyncio.create_task(monitor.watch(probe, interval_seconds=0.01))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert heard == [True, False]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
