# Order composition, pricing and lifecycle engine
