from ahr_rotate.bancho import main

if __name__ == "__main__":
    main()
