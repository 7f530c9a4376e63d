from taskweave.cli import main

main(prog_name="taskweave")
