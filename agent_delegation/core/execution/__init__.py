"""UserOperation building, nonces and the sponsored runner"""
