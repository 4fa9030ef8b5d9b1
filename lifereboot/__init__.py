# Life Reboot: daily habit boards, task columns, notes and analytics
#
# Components:
#   schema.py    - Data model (Habit, Task, DailyNote, HistoryEntry, UserProfile)
#   dates.py     - Calendar-day helpers (YYYY-MM-DD strings)
#   defaults.py  - Seed habits, seed tasks, quotes
#   remote.py    - Remote table boundary (PostgREST over HTTP, or local SQLite)
#   auth.py      - Auth service client (sessions, sign-in, sign-up, reset)
#   store.py     - Working-set base: sync flags, error recording, events
#   habits.py    - Habit working-set store (fetch/seed, move, status edits)
#   tasks.py     - Task working-set store (fetch/seed, column moves)
#   notes.py     - Daily note store and debounced autosave
#   offline.py   - Online/offline mode and the durable mutation outbox
#   events.py    - Store event bus and transient notification feed
#   board.py     - Board columns, drop handling, per-user registry
#   analytics.py - Completion stats, streaks, history calendar
#   profiles.py  - User settings (language, theme)
#   config.py    - YAML configuration
