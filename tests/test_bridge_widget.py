import asyncio

import pytest

from niomon.bridge.channel import LocalWindow, WidgetMode
from niomon.bridge.protocol import DITTO
from niomon.bridge.serialization import encode_notification
from niomon.bridge.widget import WIDGET_CONTAINER_ID, WidgetContainer, ditto_widget_url


class _ContentWindow:
    def __init__(self, host):
        self.host = host

    def post_message(self, message, target_origin):
        pass

    def add_message_listener(self, listener):
        pass

    def remove_message_listener(self, listener):
        pass

    def send(self, data):
        self.host.dispatch(data, origin="https://app.ditto.xyz", source=self)


class _Handle:
    def __init__(self, host):
        self.content_window = _ContentWindow(host)
        self.focus_calls = 0
        self.blur_calls = 0
        self.removed = False

    def focus(self):
        self.focus_calls += 1

    def blur(self):
        self.blur_calls += 1

    def remove(self):
        self.removed = True


class _Factory:
    def __init__(self):
        self.calls = []
        self.handle = None

    def create_context(self, parent, url, element_id):
        self.calls.append((url, element_id))
        self.handle = _Handle(parent)
        return self.handle


class _Renderer:
    def __init__(self):
        self.modes = []

    def render(self, handle, mode):
        self.modes.append(mode)


def _container():
    host = LocalWindow()
    factory = _Factory()
    renderer = _Renderer()
    url = ditto_widget_url("https://api.ditto.xyz/ditto", "app-1", 137)
    container = WidgetContainer(host, url, context_factory=factory, renderer=renderer)
    return host, factory, renderer, container


def test_widget_url_points_to_app_host():
    assert ditto_widget_url("https://api.ditto.xyz/ditto", "app-1", 137) == (
        "https://app.ditto.xyz/#/ditto/widget?chainId=137&appId=app-1"
    )


def test_construction_attaches_context_hidden():
    _, factory, renderer, container = _container()
    assert factory.calls == [(container.origin, WIDGET_CONTAINER_ID)]
    assert container.mode == WidgetMode.HIDDEN
    assert renderer.modes == [WidgetMode.HIDDEN]
    assert factory.handle.blur_calls == 1


@pytest.mark.asyncio
async def test_on_ready_resolves_once_with_container():
    _, factory, _, container = _container()
    ready = container.on_ready
    await asyncio.sleep(0)
    assert not ready.done()

    factory.handle.content_window.send(encode_notification(DITTO, "ditto_ready"))
    factory.handle.content_window.send(encode_notification(DITTO, "ditto_ready"))

    assert await ready is container
    assert container.is_ready
    assert container.on_ready is ready


@pytest.mark.asyncio
async def test_ready_from_other_source_is_ignored():
    host, _, _, container = _container()
    ready = container.on_ready
    host.dispatch(encode_notification(DITTO, "ditto_ready"), source=host)
    await asyncio.sleep(0)
    assert not ready.done()
    assert not container.is_ready


@pytest.mark.asyncio
async def test_ready_before_anyone_awaits_is_remembered():
    _, factory, _, container = _container()
    factory.handle.content_window.send({"channelType": "ditto_message", "method": "ditto_ready"})
    assert container.is_ready
    assert await container.on_ready is container


def test_valid_mode_renders_and_focuses():
    _, factory, renderer, container = _container()
    container.mode = "focused"
    assert container.mode == WidgetMode.FOCUSED
    assert renderer.modes[-1] == WidgetMode.FOCUSED
    assert factory.handle.focus_calls == 1

    container.mode = WidgetMode.MINIMIZED
    assert factory.handle.blur_calls == 2


@pytest.mark.parametrize("bad_mode", ["fullscreen", None, 3, ["focused"]])
def test_unknown_mode_leaves_state_unchanged(bad_mode):
    _, factory, renderer, container = _container()
    container.mode = "minimized"
    renders = len(renderer.modes)

    assert container.set_mode(bad_mode) is False
    assert container.mode == WidgetMode.MINIMIZED
    assert len(renderer.modes) == renders
    assert factory.handle.focus_calls == 0


def test_remote_mode_notification_goes_through_setter():
    _, factory, renderer, container = _container()
    factory.handle.content_window.send(encode_notification(DITTO, "ditto_mode", ["focused"]))
    assert container.mode == WidgetMode.FOCUSED
    assert factory.handle.focus_calls == 1

    factory.handle.content_window.send(encode_notification(DITTO, "ditto_mode", ["sideways"]))
    assert container.mode == WidgetMode.FOCUSED
    assert renderer.modes[-1] == WidgetMode.FOCUSED


def test_close_detaches_context():
    host, factory, _, container = _container()
    container.close()
    assert factory.handle.removed
    assert host.listener_count == 0
