#!/usr/bin/env python3
"""
Quick verification that the daily board works end-to-end against a local
SQLite remote.
"""
import os
import tempfile

from lifereboot.analytics import completion_stats, habit_history
from lifereboot.board import Board
from lifereboot.events import StoreEvents, NotificationFeed
from lifereboot.offline import Connectivity
from lifereboot.remote import SQLiteRemote

USER_ID = "verify-user"
DAY = "2024-01-01"


def main():
    print("=" * 60)
    print("Life Reboot Board Verification")
    print("=" * 60)

    # Create remote
    print("\n[1/6] Creating SQLite remote and local state...")
    verify_dir = tempfile.mkdtemp(prefix="lifereboot_verify_")
    remote = SQLiteRemote(os.path.join(verify_dir, "remote.db"))
    events = StoreEvents()
    feed = NotificationFeed(events)
    connectivity = Connectivity(os.path.join(verify_dir, "local.db"), remote, events=events)
    connectivity.go_online("verification run")
    print("✅ Remote created")

    # Open the board
    print(f"\n[2/6] Opening board for {DAY}...")
    board = Board(remote, USER_ID, connectivity, events, debounce_ms=0)
    if not board.open(DAY):
        print(f"❌ Board failed to load: {board.habits.error or board.tasks.error}")
        return
    for bucket, habits in board.columns().items():
        print(f"   {bucket:<10} {len(habits)} habit(s)")
    print(f"✅ {len(board.habits.items)} habits, {len(board.tasks.items)} tasks")

    # Complete a habit
    print("\n[3/6] Dropping the first morning habit on 'completed'...")
    habit = board.columns()["morning"][0]
    moved = board.handle_drop(habit.id, "completed")
    if moved is None:
        print(f"❌ Move failed: {board.habits.error}")
        return
    print(f"✅ {moved.title}: {moved.status.value}")

    # Move a task
    print("\n[4/6] Moving the first task to 'in_progress'...")
    task = board.tasks.items[0]
    board.handle_task_drop(task.id, "in_progress")
    print(f"✅ {task.title}: {board.tasks.get(task.id).status.value}")

    # Save a note
    print("\n[5/6] Saving the daily note...")
    board.notes.save(DAY, "Verification note")
    print(f"✅ Note: {board.notes.content!r}")

    # Stats
    print("\n[6/6] Reading history and stats...")
    entries = habit_history(remote, USER_ID)
    stats = completion_stats(remote, USER_ID, DAY)
    print(f"   History entries: {len(entries)}")
    print(f"   Completion rate: {stats['completion_rate']}%")
    print(f"   Notifications:   {len(feed.drain(USER_ID))}")

    print("\n" + "=" * 60)
    print("✅ ALL CHECKS PASSED")
    print("=" * 60)
    print(f"\nVerification data: {verify_dir}")


if __name__ == "__main__":
    main()
