"""
QuestScribe -- application layer.

Package layout:
    services/   Application services (event bus, document session)
    paths.py    Per-user data and autosave locations
    main.py     ``questscribe`` command-line entry point
"""
