from wavetrace.cli import main

main()
