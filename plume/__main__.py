import sys
from pathlib import Path

from plume.plume_runtime import ScriptRunner
from plume.plume_printer import Printer


# A basic input prompt.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def _print_output(result):
    for message in result.output:
        print(message)


def run_ast_file(file_path: str):
    """Run a Plume AST file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_text(source, filename=p.name)
    _print_output(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value:
        last = result.value[-1]
        if last is not None:
            print(printer.pformat(last))


def main():
    """Run an AST file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            run_ast_file(arg)
            return

    print("Plume REPL v0.1")
    print("Enter one JSON or YAML node per line. Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner()
    printer = Printer()

    while True:
        try:
            raw = read_line(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break
            if line == ":scope":
                print(printer.pformat(runner.root_scope))
                continue

            result = runner.handle_text(line)
            _print_output(result)

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value:
                last = result.value[-1]
                if last is not None:
                    print(printer.pformat(last))

        except EOFError:
            print("\nExiting.")
            break


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
