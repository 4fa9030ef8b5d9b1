"""
Seed data: the default habit set, default tasks, and motivational quotes.
"""
import random
from typing import List, Dict, Any


# (title, description, time_of_day)
DEFAULT_HABITS = [
    ("Fajr Prayer", "Perform Fajr prayer on time", "morning"),
    ("Read Quran (10 mins)", "Read and reflect on Quran for at least 10 minutes", "morning"),
    ("Morning Gratitude", "Write down 3 things you're grateful for", "morning"),
    ("Dhuhr Prayer", "Perform Dhuhr prayer on time", "afternoon"),
    ("Asr Prayer", "Perform Asr prayer on time", "afternoon"),
    ("Work Session (Deep Focus)", "Complete 1 hour of deep focused work", "afternoon"),
    ("Maghrib Prayer", "Perform Maghrib prayer on time", "evening"),
    ("Isha Prayer", "Perform Isha prayer on time", "evening"),
    ("Evening Reflection", "Reflect on your day and plan for tomorrow", "evening"),
]

# (title, description, scheduled_time)
DEFAULT_TASKS = [
    ("Review daily goals", "Check and update daily objectives", "09:00"),
    ("Complete work project", "Finish the assigned project tasks", "14:00"),
    ("Exercise session", "30 minutes of physical activity", "18:00"),
]

QUOTES = [
    ("The best way to predict your future is to create it.", "Abraham Lincoln"),
    (
        "Every soul shall taste death. And We test you with evil and with good "
        "as trial; and to Us you will be returned.",
        "Quran 21:35",
    ),
    ("Atomic habits are the compound interest of self-improvement.", "James Clear"),
    ("The five daily prayers erase the sins committed in between them.", "Hadith, Sahih Muslim"),
    (
        "Indeed, Allah will not change the condition of a people until they "
        "change what is in themselves.",
        "Quran 13:11",
    ),
    ("Small habits don't add up. They compound.", "James Clear, Atomic Habits"),
    ("The reward of deeds depends upon the intentions.", "Hadith, Sahih Bukhari"),
    (
        "You do not rise to the level of your goals. You fall to the level of your systems.",
        "James Clear",
    ),
]


def default_habit_rows(user_id: str, date: str) -> List[Dict[str, Any]]:
    """Insert payloads for the 9 seeded habits (3 per time of day)."""
    return [
        {
            "user_id": user_id,
            "title": title,
            "description": description,
            "time_of_day": time_of_day,
            "date": date,
            "status": "pending",
            "is_default": True,
        }
        for title, description, time_of_day in DEFAULT_HABITS
    ]


def default_task_rows(user_id: str, date: str) -> List[Dict[str, Any]]:
    """Insert payloads for the 3 seeded tasks."""
    return [
        {
            "user_id": user_id,
            "title": title,
            "description": description,
            "status": "todo",
            "scheduled_time": scheduled_time,
            "date": date,
        }
        for title, description, scheduled_time in DEFAULT_TASKS
    ]


def random_quote() -> Dict[str, str]:
    text, source = random.choice(QUOTES)
    return {"text": text, "source": source}
