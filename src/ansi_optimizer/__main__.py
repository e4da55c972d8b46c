from ansi_optimizer.cli import cli

if __name__ == "__main__":
    cli(prog_name="ansi-optimizer")
