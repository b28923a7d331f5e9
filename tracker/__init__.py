"""Card Statement Tracker: asynchronous extraction of card transactions from statement video frames."""
