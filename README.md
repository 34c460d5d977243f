# groupbot

This package holds the parts of a group chat bot without any chat connection.
Each module does one job and returns plain Python values: strings, tuples,
dataclasses and paths. Your own bot code decides how to send them.

## Modules

- `groupbot.timer`: `Timer` stores reminders that come from Chinese date
  phrases. One integer holds the month, day, weekday, hour and minute, and -1
  in a field means "every". `get_filled_timer` builds a timer from the groups a
  reminder command's regex captured. `get_filled_cron_timer` builds one from a
  cron expression. `Timer.next_wake_time(now)` gives the time the timer next
  checks itself. `Timer.is_due(now)` says whether it fires at that time.
  `Timer.message_segments()` gives the message to send: an @all segment, the
  alert text and an optional image.
- `groupbot.clock`: `CronSchedule` parses a five-field cron expression, and
  also the `@daily` style shorthands. `Clock` saves timers in a SQLite file and
  runs each one on a background thread. When a timer fires, the `Clock` calls
  the `sender` callable you gave it. You can also use `Clock` to list, look up
  or cancel the timers of a group.
- `groupbot.midi`: `build_track` and `make_midi` turn note strings such as
  `CCGGAAGR FFEEDDCR` into Standard MIDI files, using `mido`. `midi_to_text`
  turns a track back into a note string. `TimbreSettings` stores one
  instrument per group. `ListeningQuiz` runs a five-round quiz in which players
  name the note that was played. `str_to_music` renders the MIDI file to WAV
  by calling the external `timidity` program, which you have to install
  yourself.
- `groupbot.marriage`: `Registry` stores a once-a-day "marry a group member"
  game in SQLite. It holds the couples of each day, the favourability of each
  pair, the skill cooldowns and the per-group switches. The `check_*`
  functions decide whether a move is allowed. They return `None` when it is,
  and otherwise the refusal text.
- `groupbot.wedding`: `Wedding` puts the game commands on top of a `Registry`:
  marry at random, propose, steal, matchmake, gift, divorce, roster and reset.
  Each command returns a `Reply` that holds text, the users to mention and an
  optional avatar image.
- `groupbot.manager`: helpers for running a group:
  - `mute_minutes` works out mute lengths.
  - `GreetingStore` keeps welcome and farewell templates, and
    `render_welcome` fills them in.
  - `toggle_flag` switches feature bits.
  - `parse_gist_answer`, `gist_url` and `check_new_user` handle join
    verification through a gist.
  - `pick_lucky_member` picks a random member.
  - `format_essence` formats the list of essence messages.
  - `make_quiz` and `check_quiz_answer` provide the arithmetic question put to
    new members.
- `groupbot.moyu`: `weekend`, `Holiday` and `build_reminder` count the days to
  the weekend and to public holidays.
- `groupbot.runcode`: `cut_too_long` trims program output after 30 lines or
  about 1000 characters.
- `groupbot.nsfw`: `judge` and `auto_judge` turn image classifier scores
  (`Picture`) into short verdicts.
- `groupbot.reborn`: `Reborn` draws a country of birth by weight and a gender.
- `groupbot.nativewife`: `WifeFolder` keeps one folder of pictures per group.
  Its `draw` method gives the same picture for a given name all day.

## Examples

Parse a reminder and inspect it:

```python
from groupbot.timer import get_filled_timer

t = get_filled_timer(["", "12", "每周", "12", "0", "", "test"], 0, 0, False)
print(t.enabled(), t.month(), t.week(), t.hour(), t.minute())
print(t.timer_info(), t.timer_id())
```

Read Chinese numerals:

```python
from groupbot.timer import chinese_num_to_int

chinese_num_to_int("十五")     # 15
chinese_num_to_int("每")       # -1
```

Work with notes:

```python
from groupbot.midi import process_one, note_name, make_midi

process_one("C#6")             # 73
note_name(61)                  # "Db"
make_midi("song.mid", "CCGGAAGR FFEEDDCR", 40)
```

Cut long output:

```python
from groupbot.runcode import cut_too_long

short = cut_too_long("\n".join(str(i) for i in range(100)))
```

## What it does not do

- There is no bot. The package does not connect to a chat server, receive
  messages or send them, and it has no command-line program.
- Network access is left to you. `check_new_user` fetches the gist through a
  `fetch` callable that you pass in. Holidays come in as parsed records, not
  from a remote store.
- There is no image rendering. `Wedding.roster` returns the roster as text,
  and `groupbot.wedding.avatar_url` and `groupbot.manager.avatar_url` return
  avatar URLs.
- The package does not classify images itself. `groupbot.nsfw` only reads
  scores that you supply.
- The package has no code runner of its own.

## Tests

The test suite uses pytest. Install it with the `test` extra.