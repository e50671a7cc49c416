from request_logger.server import run

if __name__ == "__main__":
    run()
