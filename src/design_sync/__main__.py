from design_sync.cli import run

run()
