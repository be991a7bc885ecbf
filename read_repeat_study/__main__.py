from read_repeat_study.cli import main

main()
