# askit

Building blocks for asking an OpenAI-compatible chat-completion endpoint a
question. The library covers the work that comes before and after the
network call:

- **Configuration** (`askit.config`, `askit.validate`, `askit.explain`):
  typed configuration with built-in defaults, strict YAML loading, and
  validation that reports every problem at once. It can also produce a
  table that shows each field's value and the source of that value.
- **Prompt assembly** (`askit.tokens`, `askit.classify`, `askit.textref`,
  `askit.imageref`, `askit.assemble`): prose that contains `@path` file
  references is turned into a user message.
  - Text files are inlined as fenced blocks.
  - Images become base64 data URLs. They can be downscaled first.
- **Rendering** (`askit.render`): plain streaming output, a JSON envelope,
  or the raw upstream body.
- **Chat sessions** (`askit.session`, `askit.slash`, `askit.transcript`):
  an in-memory transcript that supports slash commands and can be saved as
  `.json`, `.md` or `.txt`.

## Installation

```
pip install askit
```

Requires Python 3.10 or later. It depends on PyYAML and Pillow.

## Configuration

`askit.config.default_config_path()` returns the default file location,
chosen in this order:

1. `$XDG_CONFIG_HOME/askit/config.yml`, if that variable is set and not blank.
2. `$HOME/.config/askit/config.yml`, on systems other than Windows.
3. Otherwise, the platform's user config directory (on Windows,
   `%APPDATA%`) followed by `askit/config.yml`.

An example config file:

```yaml
endpoint: http://localhost:1234/v1
api_key: placeholder
model: my-model
defaults:
  temperature: 0.2
  timeout: 60s
file_references:
  unknown_strategy: error
  resize_images:
    enabled: true
    max_long_edge_px: 2048
presets:
  ocr:
    system: "You are an OCR engine."
    temperature: 0.0
```

`load_file(path)` returns a `PartialConfig`. In it, every field the file
leaves out is `None`. Errors are raised as follows:

- A missing file raises `ConfigMissingError`.
- These problems raise `ConfigError`:
  - a YAML syntax error;
  - an empty document;
  - an unknown key;
  - a badly typed value;
  - a bad duration string.

Duration strings use the forms `"30s"`, `"1.5m"` and `"2h30m"`. They are
handled by `parse_duration` and `format_duration`.

`builtins()` returns a fresh `Config` that holds the default values.
`validate(cfg)` returns a list of `ConfigProblem` exceptions; the list is
empty when the config is valid. `ValidationError(problems)` combines them
into one exception. `explain(cfg, provenance)` returns one `ExplainLine`
per tracked field. Here `provenance` maps dotted field paths to `Source`
values.

```python
from askit.config import Source, builtins, default_config_path, load_file
from askit.validate import validate
from askit.explain import explain

partial = load_file(default_config_path())   # raises ConfigMissingError if absent

cfg = builtins()
cfg.endpoint = "http://localhost:1234/v1"
cfg.model = "my-model"
for problem in validate(cfg):
    print(problem)

for line in explain(cfg, {"endpoint": Source.FLAG}):
    print(line.field, line.value, line.source)
```

## Prompts with file references

```python
from askit.config import builtins
from askit.assemble import AssembleOptions, assemble

prompt, refs = assemble(
    "summarize @./notes.md and describe @`my scan.png`",
    AssembleOptions(policy=builtins().file_references, system_prompt="Be brief."),
)
```

A prompt can contain these forms:

- `@path` starts a reference only at the start of the input, or after
  whitespace or one of `( [ { , ; " '`. This means `name@host` is left as
  plain text.
- `` @`path with spaces` `` quotes a path that contains spaces.
- `@file.dat:text` or `@file.dat:image` forces how the file is classified.
- `\@` writes a literal at-sign.
- A leading `~/` expands to the home directory.

A file's kind comes from its extension, using the policy's
`image_extensions` and `text_extensions` lists. For other extensions,
`unknown_strategy` decides what happens:

- `error` rejects the file.
- `skip` records the file and leaves it out of the message.
- `text` or `image` forces that kind.

Size limits work as follows:

- Text files larger than `max_text_size_kb` raise `SizeError`.
- Images whose base64 payload exceeds `max_image_size_mb` raise
  `SizeError`.
- `SizeError.hint()` suggests how to fix the problem.

Image resizing applies to PNG and JPEG images whose long edge is larger than
`max_long_edge_px`. A resized PNG stays PNG. A resized JPEG is re-encoded at
`jpeg_quality`.

## Rendering output

Renderers write bytes to a binary stream.

```python
import sys
from askit.render import Meta, PlainRenderer

renderer = PlainRenderer(sys.stdout.buffer)
renderer.stream("Hello")
renderer.finalize(Meta())   # adds the missing trailing newline
```

- `JSONRenderer` buffers the streamed text and writes one JSON envelope.
  The envelope contains the request metadata, the inputs, the response
  text, the finish reason, the `Usage` counts and the timestamps.
- `RawRenderer` writes `Meta.raw_body` unchanged and adds a trailing newline
  if the body lacks one.

## Chat sessions

```python
from askit.session import Session
from askit.slash import dispatch_slash, is_slash

session = Session(system_prompt="sys")
session.append_user("hello")
session.append_assistant_chunk("hi there")

if is_slash("/save chat.md"):
    result = dispatch_slash("/save chat.md", session, {})
    print(result.notice or result.error)
```

`dispatch_slash` accepts these commands:

- `/help`
- `/clear`
- `/system TEXT`
- `/preset NAME`
- `/model NAME`
- `/save FILE`
- `/save-last FILE`
- `/files`
- `/cancel`
- `/quit` or `/exit`

Errors are not raised. They come back in `SlashResult.error`. Files are
written atomically, through a temporary file followed by a rename.

`askit.version.info()` returns a one-line version string.

## What this package does not do

- It has no HTTP client. It does not send requests to an endpoint or read
  streamed responses.
- It has no command-line program and no interactive terminal screen.
- It does not merge configuration layers (built-ins, files, environment,
  flags) into one `Config`, and it does not track provenance itself. You
  build the `Config` yourself and pass any provenance mapping to
  `explain`.