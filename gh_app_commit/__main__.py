from gh_app_commit.cli import main

main()
