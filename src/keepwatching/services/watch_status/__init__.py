"""Watch status propagation: status policy and orchestration service"""
