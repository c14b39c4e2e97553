"""Tests for the per-timer countdown component"""
import asyncio

import pytest

from app.features.timers.countdown import TimerCountdown
from app.features.timers.domain import DEFAULT_COMPLETION_COLOR, TimerState
from app.features.timers.schemas import TimerInput


async def load(service, name="Work", duration_seconds=60, start=False, **kwargs):
    created = await service.create_timer(TimerInput(name=name, duration_seconds=duration_seconds, **kwargs))
    if start:
        await service.start_timer(created.id)
    return (await service.get_timer(created.id)).timer


@pytest.fixture
def completions(events):
    received = []
    events.subscribe(received.append)
    return received


class TestTicking:
    async def test_tick_decrements_while_running(self, service, events):
        countdown = TimerCountdown(await load(service, start=True), service, events)
        await countdown.tick()
        await countdown.tick()
        assert countdown.local_remaining == 58
        assert countdown.display_time == "0:58"

    async def test_tick_ignored_when_not_running(self, service, events):
        countdown = TimerCountdown(await load(service), service, events)
        await countdown.tick()
        assert countdown.local_remaining == 60

    async def test_completion_fires_once(self, service, events, supabase, completions):
        updates = []
        timer = await load(service, name="Tea", duration_seconds=3, start=True)
        countdown = TimerCountdown(timer, service, events, on_update=lambda: updates.append(1))

        for _ in range(6):
            await countdown.tick()

        assert countdown.local_remaining == 0
        assert countdown.is_completed
        assert [event.timer.name for event in completions] == ["Tea"]
        assert updates == [1]
        assert supabase.row(timer.id)["state"] == "completed"

    async def test_two_views_of_one_timer_alert_once(self, service, events, completions):
        timer = await load(service, duration_seconds=2, start=True)
        card = TimerCountdown(timer, service, events)
        widget = TimerCountdown(timer, service, events)

        for _ in range(2):
            await card.tick()
            await widget.tick()

        assert card.is_completed and widget.is_completed
        assert len(completions) == 1

    async def test_completion_publishes_even_if_persisting_fails(self, service, events, supabase, completions):
        timer = await load(service, duration_seconds=1, start=True)
        countdown = TimerCountdown(timer, service, events)

        supabase.fail_next("timers", "update", "network down")
        await countdown.tick()
        assert len(completions) == 1

    async def test_async_on_update(self, service, events):
        calls = []

        async def refresh():
            calls.append("refreshed")

        countdown = TimerCountdown(await load(service, duration_seconds=1, start=True), service, events, on_update=refresh)
        await countdown.tick()
        assert calls == ["refreshed"]

    async def test_receive_reseeds_and_rearms(self, service, events, completions):
        timer = await load(service, duration_seconds=1, start=True)
        countdown = TimerCountdown(timer, service, events)
        await countdown.tick()
        assert len(completions) == 1

        await service.reset_timer(timer.id)
        await service.start_timer(timer.id)
        countdown.receive((await service.get_timer(timer.id)).timer)
        assert countdown.local_remaining == 1

        await countdown.tick()
        assert len(completions) == 2

    async def test_completed_snapshot_does_not_rearm(self, service, events, clock, completions):
        timer = await load(service, duration_seconds=1, start=True)
        countdown = TimerCountdown(timer, service, events)
        await countdown.tick()

        clock.advance(5)
        countdown.receive((await service.get_timer(timer.id)).timer)
        await countdown.tick()
        assert len(completions) == 1


class TestScheduling:
    async def test_mounted_countdown_runs_to_completion(self, service, events, completions):
        timer = await load(service, duration_seconds=2, start=True)
        countdown = TimerCountdown(timer, service, events, tick_seconds=0.01)

        countdown.mount()
        assert countdown.is_ticking
        await asyncio.sleep(0.2)

        assert countdown.local_remaining == 0
        assert len(completions) == 1
        assert not countdown.is_ticking

    async def test_unmount_stops_only_ticking(self, service, events):
        countdown = TimerCountdown(await load(service, start=True), service, events, tick_seconds=0.01)
        countdown.mount()
        await asyncio.sleep(0.05)

        countdown.unmount()
        assert not countdown.is_ticking
        frozen = countdown.local_remaining
        await asyncio.sleep(0.05)
        assert countdown.local_remaining == frozen

    async def test_stopped_timer_does_not_tick(self, service, events):
        countdown = TimerCountdown(await load(service), service, events, tick_seconds=0.01)
        countdown.mount()
        assert not countdown.is_ticking

    async def test_receive_running_snapshot_starts_ticking(self, service, events):
        timer = await load(service)
        countdown = TimerCountdown(timer, service, events, tick_seconds=10)
        countdown.mount()

        await service.start_timer(timer.id)
        countdown.receive((await service.get_timer(timer.id)).timer)
        assert countdown.is_ticking
        countdown.unmount()


class TestControls:
    async def test_pause_sends_local_value(self, service, events, supabase):
        timer = await load(service, start=True)
        countdown = TimerCountdown(timer, service, events)
        for _ in range(3):
            await countdown.tick()

        await countdown.pause()
        row = supabase.row(timer.id)
        assert row["state"] == "paused"
        assert row["remaining_seconds"] == 57

    async def test_start_and_reset_refresh(self, service, events, supabase):
        updates = []
        timer = await load(service)
        countdown = TimerCountdown(timer, service, events, on_update=lambda: updates.append(1))

        await countdown.start()
        assert supabase.row(timer.id)["state"] == "running"
        await countdown.reset()
        assert supabase.row(timer.id)["state"] == "stopped"
        assert updates == [1, 1]

    async def test_delete_requires_confirmation(self, service, events, supabase):
        timer = await load(service, name="Laundry")
        prompts = []
        countdown = TimerCountdown(timer, service, events)

        deleted = await countdown.delete(lambda message: prompts.append(message) or False)
        assert not deleted
        assert prompts == ['Delete timer "Laundry"?']
        assert len(supabase.rows()) == 1

    async def test_delete_disables_control_while_running(self, service, events, supabase):
        timer = await load(service)
        seen = []
        countdown = TimerCountdown(timer, service, events, on_update=lambda: seen.append(countdown.is_deleting))

        assert await countdown.delete(lambda message: True)
        assert seen == [True]
        assert not countdown.is_deleting
        assert supabase.rows() == []

    async def test_delete_failure_reenables(self, service, events, supabase):
        countdown = TimerCountdown(await load(service), service, events)
        supabase.fail_next("timers", "delete", "timeout")

        assert not await countdown.delete(lambda message: True)
        assert not countdown.is_deleting


class TestEditing:
    async def test_edit_redefines_duration(self, service, events, supabase):
        timer = await load(service, duration_seconds=300)
        countdown = TimerCountdown(timer, service, events)

        assert countdown.activate()
        assert countdown.edit_value == "5:00"
        countdown.set_edit_value("19:11:00")
        await countdown.handle_edit_key("Enter")

        row = supabase.row(timer.id)
        assert row["duration_seconds"] == 69060
        assert row["remaining_seconds"] == 69060
        assert row["state"] == "stopped"
        assert row["end_time"] is None
        assert not countdown.is_editing
        assert countdown.local_remaining == 69060
        assert countdown.duration_label == "19:11:00 timer"

    async def test_escape_cancels(self, service, events, supabase):
        countdown = TimerCountdown(await load(service), service, events)
        countdown.handle_display_key("Enter")
        countdown.set_edit_value("2:00")
        await countdown.handle_edit_key("Escape")

        assert not countdown.is_editing
        assert supabase.calls[-1][1] != "update"
        assert countdown.local_remaining == 60

    @pytest.mark.parametrize("value", ["abc", "5:60", "", "1:00"])
    async def test_invalid_or_unchanged_value_is_discarded(self, service, events, supabase, value):
        countdown = TimerCountdown(await load(service), service, events)
        countdown.activate()
        countdown.set_edit_value(value)

        assert not await countdown.blur()
        assert supabase.calls[-1][1] != "update"

    async def test_zero_is_rejected_by_service(self, service, events, supabase):
        countdown = TimerCountdown(await load(service), service, events)
        countdown.activate()
        countdown.set_edit_value("0:00")

        assert not await countdown.blur()
        assert supabase.rows()[0]["duration_seconds"] == 60

    async def test_not_editable_while_running(self, service, events):
        countdown = TimerCountdown(await load(service, start=True), service, events)
        assert not countdown.is_editable
        assert not countdown.activate()
        assert not countdown.handle_display_key(" ")
        assert not countdown.is_editing

    async def test_other_keys_do_not_activate(self, service, events):
        countdown = TimerCountdown(await load(service), service, events)
        assert not countdown.handle_display_key("a")


class TestDisplay:
    async def test_completion_color(self, service, events):
        countdown = TimerCountdown(await load(service, duration_seconds=1, start=True), service, events)
        assert countdown.display_color is None
        await countdown.tick()
        assert countdown.display_color == DEFAULT_COMPLETION_COLOR
        assert countdown.progress == 100

    async def test_completion_color_disabled(self, service, events):
        timer = await load(service, duration_seconds=1, start=True, enable_completion_color=False)
        countdown = TimerCountdown(timer, service, events)
        await countdown.tick()
        assert countdown.display_color is None

    async def test_start_label_and_can_start(self, service, events):
        timer = await load(service)
        countdown = TimerCountdown(timer, service, events)
        assert countdown.start_label == "Start"
        assert countdown.can_start

        countdown.receive(timer.model_copy(update={"state": TimerState.PAUSED, "remaining_seconds": 30}))
        assert countdown.start_label == "Resume"
        assert countdown.progress == 50

        countdown.receive(timer.model_copy(update={"state": TimerState.STOPPED, "remaining_seconds": 0}))
        assert not countdown.can_start
