#!/usr/bin/env python3
"""Talk to the duplex backend using your microphone.

Speak normally; the turn ends after a pause. You can also type a
message and press Enter while the assistant is listening.
Commands: /history (show messages), /quit (exit)

Start the backend first:
    uvicorn duplex.main:app
"""

import asyncio

from duplex.config import get_settings
from duplex.core.coordinator import SessionState, TurnCoordinator
from duplex.core.exceptions import is_recoverable
from duplex.logging_config import setup_logging

STATE_LABELS = {
    SessionState.IDLE: "⏹️  Stopped",
    SessionState.LISTENING: "👂 Listening...",
    SessionState.CAPTURING: "🎙️  Recording",
    SessionState.AWAITING: "⏳ Thinking...",
    SessionState.SPEAKING: "🔊 Speaking",
    SessionState.ERROR: "❌ Error",
}


def print_history(coordinator: TurnCoordinator) -> None:
    if not coordinator.messages:
        print("  (no messages yet)")
    for message in coordinator.messages:
        icon = "👤" if message.role.value == "user" else "🤖"
        print(f"  {icon} {message.content}")


async def main():
    settings = get_settings()
    setup_logging(level="WARNING", enable_file=False, role="client")

    coordinator = TurnCoordinator.from_settings(settings)
    shown = 0

    def on_state(old: SessionState, new: SessionState) -> None:
        nonlocal shown
        # Print newly recorded messages before the state that follows them
        for message in coordinator.messages[shown:]:
            icon = "👤 You" if message.role.value == "user" else "🤖 Bot"
            print(f"{icon}: {message.content}")
        shown = len(coordinator.messages)

        print(STATE_LABELS[new])
        if new is SessionState.ERROR and coordinator.last_error:
            print(f"   {coordinator.last_error}")
            if not is_recoverable(coordinator.last_error):
                print("   Press Enter to exit.")

    coordinator.add_listener(on_state)

    print("=" * 60)
    print(f"🎧 duplex voice chat ({settings.transport_mode} mode)")
    print("=" * 60)

    if not await coordinator.start_conversation():
        print(f"\n❌ Could not start: {coordinator.last_error}\n")
        return

    try:
        while True:
            line = (await asyncio.to_thread(input)).strip()
            if not line:
                continue

            if line.lower() == "/quit":
                print("\n👋 Goodbye!")
                break

            if line.lower() == "/history":
                print_history(coordinator)
                continue

            if not await coordinator.send_message(line):
                print(f"   ⚠️  {coordinator.last_error}")

            if coordinator.state is SessionState.ERROR:
                print(f"\n❌ Session ended: {coordinator.last_error}\n")
                break

    except (KeyboardInterrupt, EOFError):
        print("\n👋 Goodbye!")

    finally:
        await coordinator.stop_conversation()


if __name__ == "__main__":
    asyncio.run(main())
