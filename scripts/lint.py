import subprocess
import sys

TARGETS = ["inbox", "tests", "scripts"]


def run(tool: str, *args: str) -> None:
    print(f"Running {tool}...")
    subprocess.run([tool, *args, *TARGETS], check=True)


def main():
    check = "--check" in sys.argv[1:]
    try:
        run("black", *(["--check"] if check else []))
        run("isort", *(["--check-only"] if check else []))
        run("flake8")
        print("Linting completed successfully!")
    except subprocess.CalledProcessError as e:
        print(f"Error during linting: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
