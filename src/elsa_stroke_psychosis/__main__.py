from .preprocess_data import main

main()
